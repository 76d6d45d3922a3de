"""Entry point for the inspektor command line tool."""

from __future__ import annotations

import argparse
import contextlib
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .analyzer import create_analyzer
from .config import load_settings
from .diagnostics import Finding, FindingKind
from .errors import InspektorError
from .formatting import format_findings, format_snapshot, process_rows, system_rows, to_json
from .inspector import InspectionReport, inspect_pid, inspect_port


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="inspektor",
        description="Inspect a running process and its host, and explain what looks wrong.",
    )
    parser.add_argument("pid", nargs="?", type=int, help="process id to inspect")
    parser.add_argument("-p", "--port", type=int, help="inspect the process listening on this port instead")
    parser.add_argument("-j", "--json", action="store_true", help="print the snapshot and findings as JSON")
    parser.add_argument("--ui", action="store_true", help="render the report with rich tables")
    parser.add_argument("--no-ai", action="store_true", help="skip the AI backend and use rule-based analysis")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging on stderr")
    args = parser.parse_args(argv)

    if (args.pid is None) == (args.port is None):
        parser.error("specify exactly one of PID or --port")

    stderr = Console(stderr=True)
    _configure_logging(args.verbose, stderr)

    settings = load_settings()
    if args.no_ai:
        settings = replace(settings, ai_enabled=False)

    status = (
        contextlib.nullcontext()
        if args.json
        else stderr.status("Analyzing process and system metrics...", spinner="dots")
    )
    try:
        with status:
            analyzer = create_analyzer(settings)
            if args.port is not None:
                report = inspect_port(args.port, analyzer)
            else:
                report = inspect_pid(args.pid, analyzer)
    except InspektorError as exc:
        print(f"Error inspecting process: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(to_json(report.snapshot, report.findings))
    elif args.ui:
        _render_rich(report)
    else:
        print(format_snapshot(report.snapshot))
        print()
        print(format_findings(report.findings))
    return 0


def _configure_logging(verbose: bool, console: Console) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _render_rich(report: InspectionReport) -> None:
    console = Console()
    snapshot = report.snapshot
    proc = snapshot.process

    console.print(
        Panel(
            Text(f"INSPEKTOR - Process {proc.pid} ({proc.name or 'unknown'}) - {snapshot.timestamp:%Y-%m-%d %H:%M:%S}"),
            style="bold cyan",
        )
    )
    console.print(_rich_section("Process", process_rows(snapshot)))
    console.print(_rich_section("System", system_rows(snapshot)))
    if proc.unavailable:
        console.print(Text(f"Unavailable: {', '.join(proc.unavailable)}", style="dim"))

    if not report.findings:
        console.print(Panel("✓ All systems healthy", style="bold green"))
        return

    warnings = [f for f in report.findings if f.kind is FindingKind.WARNING]
    recommendations = [f for f in report.findings if f.kind is FindingKind.RECOMMENDATION]
    if warnings:
        console.print(_rich_findings("Warnings", warnings, "bold red"))
    if recommendations:
        console.print(_rich_findings("Recommendations", recommendations, "bold blue"))


def _rich_section(title: str, rows: List[tuple]) -> Table:
    table = Table(title=title, show_header=False, box=box.ROUNDED)
    table.add_column(style="bold")
    table.add_column()
    for label, value in rows:
        table.add_row(label, Text(value))
    return table


def _rich_findings(title: str, findings: List[Finding], style: str) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD, title_style=style)
    table.add_column("#", justify="right")
    table.add_column("Finding")
    for index, finding in enumerate(findings, start=1):
        table.add_row(str(index), Text(finding.label()))
    return table


if __name__ == "__main__":
    sys.exit(main())
