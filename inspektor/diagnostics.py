"""Deterministic rule-based diagnostics for a process snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

from .formatting import format_bytes
from .system_state import CombinedSnapshot, ProcessSnapshot, ProcessStatus, SystemSnapshot

PROCESS_CPU_HIGH = 80.0
PROCESS_CPU_MODERATE = 50.0
SYSTEM_CPU_CRITICAL = 90.0
SYSTEM_CPU_HIGH = 75.0
PROCESS_MEMORY_HIGH = 10.0
VMS_RSS_RATIO = 3
SYSTEM_MEMORY_CRITICAL = 90.0
SYSTEM_MEMORY_HIGH = 80.0
RECENT_START_SECONDS = 60.0
OPEN_FILES_MAX = 1000
CONNECTIONS_MAX = 100
CHILDREN_MAX = 50
SMALL_HOST_CORES = 2
SMALL_HOST_CPU = 60.0
FREE_MEMORY_MIN = 10.0


class FindingKind(str, Enum):
    WARNING = "warning"
    RECOMMENDATION = "recommendation"

    @property
    def glyph(self) -> str:
        return "⚠" if self is FindingKind.WARNING else "→"


@dataclass(frozen=True)
class Finding:
    kind: FindingKind
    message: str

    def label(self) -> str:
        return f"{self.kind.glyph} {self.message}"


def warning(message: str) -> Finding:
    return Finding(FindingKind.WARNING, message)


def recommendation(message: str) -> Finding:
    return Finding(FindingKind.RECOMMENDATION, message)


def diagnose(snapshot: CombinedSnapshot) -> List[Finding]:
    """Evaluate every rule against the snapshot and return findings in priority order.

    Groups run in a fixed order (CPU, memory, process behaviour, host) and
    every rule is checked; one firing never suppresses another.
    """
    findings: List[Finding] = []

    findings.extend(_diagnose_cpu(snapshot.process, snapshot.system))
    findings.extend(_diagnose_memory(snapshot.process, snapshot.system))
    findings.extend(_diagnose_process(snapshot))
    findings.extend(_diagnose_host(snapshot.system))

    return findings


def _diagnose_cpu(process: ProcessSnapshot, system: SystemSnapshot) -> List[Finding]:
    findings: List[Finding] = []
    if process.cpu_percent > PROCESS_CPU_HIGH:
        findings.append(
            warning(
                f"High CPU usage detected: process consuming {process.cpu_percent:.2f}% CPU "
                "- investigate for performance bottlenecks"
            )
        )
    elif process.cpu_percent > PROCESS_CPU_MODERATE:
        findings.append(
            warning(
                f"Moderate CPU usage: process using {process.cpu_percent:.2f}% CPU "
                "- monitor for sustained high usage"
            )
        )

    if system.cpu_percent > SYSTEM_CPU_CRITICAL:
        findings.append(
            warning(f"Critical system CPU load: {system.cpu_percent:.2f}% usage - immediate attention required")
        )
    elif system.cpu_percent > SYSTEM_CPU_HIGH:
        findings.append(
            warning(f"High system CPU load: {system.cpu_percent:.2f}% usage - consider load balancing")
        )
    return findings


def _diagnose_memory(process: ProcessSnapshot, system: SystemSnapshot) -> List[Finding]:
    findings: List[Finding] = []
    if process.memory_percent > PROCESS_MEMORY_HIGH:
        findings.append(
            warning(
                f"High memory usage: process using {process.memory_percent:.2f}% of system memory "
                f"({format_bytes(process.memory_rss)} RSS)"
            )
        )

    if process.memory_vms > process.memory_rss * VMS_RSS_RATIO:
        findings.append(
            warning(
                f"Potential memory leak: virtual memory ({format_bytes(process.memory_vms)}) "
                f"significantly exceeds RSS ({format_bytes(process.memory_rss)})"
            )
        )

    if system.memory_percent > SYSTEM_MEMORY_CRITICAL:
        findings.append(
            warning(f"Critical memory pressure: system at {system.memory_percent:.2f}% - risk of OOM kills")
        )
    elif system.memory_percent > SYSTEM_MEMORY_HIGH:
        findings.append(
            warning(f"High memory usage: system at {system.memory_percent:.2f}% - consider memory optimization")
        )
    return findings


def _diagnose_process(snapshot: CombinedSnapshot) -> List[Finding]:
    findings: List[Finding] = []
    process = snapshot.process

    age = snapshot.process_age()
    if age is not None and age < RECENT_START_SECONDS:
        findings.append(warning("Recently started process - monitor for stability during initialization"))

    if process.status is ProcessStatus.ZOMBIE:
        findings.append(warning("Zombie process detected - parent should reap this process"))
    elif process.status is ProcessStatus.STOPPED:
        findings.append(warning("Process is currently stopped - may need manual intervention"))

    if process.open_files > OPEN_FILES_MAX:
        findings.append(
            warning(
                f"High file descriptor usage: {process.open_files} open files "
                "- check for file descriptor leaks"
            )
        )
    if process.connections > CONNECTIONS_MAX:
        findings.append(
            warning(
                f"High network connections: {process.connections} active connections "
                "- monitor for connection leaks"
            )
        )
    if process.children > CHILDREN_MAX:
        findings.append(
            warning(f"Many child processes: {process.children} children - ensure proper process management")
        )
    return findings


def _diagnose_host(system: SystemSnapshot) -> List[Finding]:
    findings: List[Finding] = []
    if system.cpu_count <= SMALL_HOST_CORES and system.cpu_percent > SMALL_HOST_CPU:
        findings.append(
            warning(
                f"Limited CPU resources: only {system.cpu_count} cores with "
                f"{system.cpu_percent:.2f}% usage - consider scaling up"
            )
        )

    if system.memory_total > 0:
        free_percent = system.memory_free / system.memory_total * 100
        if free_percent < FREE_MEMORY_MIN:
            findings.append(
                warning(
                    f"Low free memory: only {free_percent:.1f}% free ({format_bytes(system.memory_free)}) "
                    "- system may become unstable"
                )
            )
    return findings
