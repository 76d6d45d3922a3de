"""Console-friendly formatting utilities."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Sequence

from .system_state import CombinedSnapshot

if TYPE_CHECKING:
    from .diagnostics import Finding


def format_bytes(num: float) -> str:
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB"]
    value = float(num)
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}"
        value /= 1024
    return f"{value:.1f} TiB"


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    clock = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days}d {clock}" if days else clock


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    lines = []
    lines.append(_format_row(headers, widths))
    lines.append(_format_row(["-" * w for w in widths], widths))
    for row in rows:
        lines.append(_format_row(row, widths))
    return "\n".join(lines)


def process_rows(snapshot: CombinedSnapshot) -> list[tuple[str, str]]:
    """Label/value pairs describing the process, empty values omitted."""
    proc = snapshot.process
    age = snapshot.process_age()
    started = datetime.fromtimestamp(proc.create_time).strftime("%b %d, %H:%M:%S") if age is not None else ""
    rows = [
        ("Status", proc.status.value.capitalize()),
        ("Command", proc.cmdline),
        ("Executable", proc.exe),
        ("Working Dir", proc.cwd),
        ("Started", f"{started} ({format_duration(age)} ago)" if started else ""),
        ("CPU Usage", f"{proc.cpu_percent:.1f}%"),
        ("Memory", f"{format_bytes(proc.memory_rss)} ({proc.memory_percent:.1f}%)"),
        ("Virtual Memory", format_bytes(proc.memory_vms)),
        ("Open Files", str(proc.open_files)),
        ("Connections", str(proc.connections)),
        ("Child Processes", str(proc.children)),
    ]
    return [(label, value) for label, value in rows if value]


def system_rows(snapshot: CombinedSnapshot) -> list[tuple[str, str]]:
    system = snapshot.system
    return [
        ("CPU", f"{system.cpu_count} cores, {system.cpu_percent:.1f}%"),
        (
            "Memory",
            f"{format_bytes(system.memory_used)} / {format_bytes(system.memory_total)} "
            f"({system.memory_percent:.1f}%), {format_bytes(system.memory_free)} free",
        ),
        ("CPU Model", system.cpu_model or "unknown"),
    ]


def format_snapshot(snapshot: CombinedSnapshot) -> str:
    proc = snapshot.process
    lines = [
        f"Process {proc.pid} ({proc.name or 'unknown'}) - {snapshot.timestamp:%Y-%m-%d %H:%M:%S}",
        "",
        "PROCESS",
        render_table(["Field", "Value"], process_rows(snapshot)),
        "",
        "SYSTEM",
        render_table(["Field", "Value"], system_rows(snapshot)),
    ]
    if proc.unavailable:
        lines.append("")
        lines.append(f"Unavailable (permission denied or process exited): {', '.join(proc.unavailable)}")
    return "\n".join(lines)


def format_findings(findings: Sequence["Finding"]) -> str:
    if not findings:
        return "✓ All systems healthy"
    return "\n".join(f"  {index}. {finding.label()}" for index, finding in enumerate(findings, start=1))


def snapshot_document(snapshot: CombinedSnapshot, findings: Sequence["Finding"]) -> Dict[str, Any]:
    process: Dict[str, Any] = asdict(snapshot.process)
    process["status"] = snapshot.process.status.value
    process["create_time"] = (
        datetime.fromtimestamp(snapshot.process.create_time).isoformat()
        if snapshot.process.create_time > 0
        else None
    )
    process["unavailable"] = list(snapshot.process.unavailable)
    return {
        "timestamp": snapshot.timestamp.isoformat(),
        "process": process,
        "system": asdict(snapshot.system),
        "warnings": [finding.label() for finding in findings],
    }


def to_json(snapshot: CombinedSnapshot, findings: Sequence["Finding"]) -> str:
    return json.dumps(snapshot_document(snapshot, findings), ensure_ascii=False, indent=2)


def _format_row(row: Sequence[str], widths: Sequence[int]) -> str:
    padded = [cell.ljust(width) for cell, width in zip(row, widths)]
    return " | ".join(padded)
