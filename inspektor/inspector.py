"""Run one inspection: resolve the target, snapshot it, analyze the snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from .analyzer import Analyzer
from .diagnostics import Finding
from .ports import resolve_by_port
from .system_state import CombinedSnapshot, gather_snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InspectionReport:
    snapshot: CombinedSnapshot
    findings: List[Finding]


def inspect_pid(pid: int, analyzer: Analyzer) -> InspectionReport:
    snapshot = gather_snapshot(pid)
    if snapshot.process.unavailable:
        logger.info("pid %d: could not read %s", pid, ", ".join(snapshot.process.unavailable))
    return InspectionReport(snapshot=snapshot, findings=analyzer.analyze(snapshot))


def inspect_port(port: int, analyzer: Analyzer) -> InspectionReport:
    pid = resolve_by_port(port)
    logger.info("found process %d listening on port %d", pid, port)
    return inspect_pid(pid, analyzer)
