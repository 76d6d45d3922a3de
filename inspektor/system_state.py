"""Collect a point-in-time snapshot of one process and the host it runs on."""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Generic, Optional, Tuple, TypeVar

import psutil

from .errors import CollectionError, ProcessNotFoundError

logger = logging.getLogger(__name__)

# Both CPU figures are rates between two samples, so every snapshot costs at least this long.
PROCESS_CPU_INTERVAL = 0.5
SYSTEM_CPU_INTERVAL = 1.0

T = TypeVar("T")


class ProcessStatus(str, Enum):
    RUNNING = "running"
    SLEEPING = "sleeping"
    ZOMBIE = "zombie"
    STOPPED = "stopped"
    UNKNOWN = "unknown"

    @classmethod
    def from_os(cls, raw: str) -> "ProcessStatus":
        return _STATUS_MAP.get(raw.lower(), cls.UNKNOWN)


_STATUS_MAP = {
    psutil.STATUS_RUNNING: ProcessStatus.RUNNING,
    psutil.STATUS_SLEEPING: ProcessStatus.SLEEPING,
    psutil.STATUS_DISK_SLEEP: ProcessStatus.SLEEPING,
    psutil.STATUS_IDLE: ProcessStatus.SLEEPING,
    psutil.STATUS_WAITING: ProcessStatus.SLEEPING,
    psutil.STATUS_PARKED: ProcessStatus.SLEEPING,
    psutil.STATUS_ZOMBIE: ProcessStatus.ZOMBIE,
    psutil.STATUS_DEAD: ProcessStatus.ZOMBIE,
    psutil.STATUS_STOPPED: ProcessStatus.STOPPED,
    psutil.STATUS_TRACING_STOP: ProcessStatus.STOPPED,
}


@dataclass(frozen=True)
class ProcessSnapshot:
    """Best-effort read of one process.

    Fields the OS refused or lost mid-read keep their zero value and are
    listed by name in ``unavailable``.
    """

    pid: int
    name: str = ""
    exe: str = ""
    cmdline: str = ""
    cwd: str = ""
    status: ProcessStatus = ProcessStatus.UNKNOWN
    cpu_percent: float = 0.0
    memory_rss: int = 0
    memory_vms: int = 0
    memory_percent: float = 0.0
    create_time: float = 0.0
    open_files: int = 0
    connections: int = 0
    children: int = 0
    unavailable: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SystemSnapshot:
    # used + free is not guaranteed to equal total.
    cpu_count: int
    cpu_model: str
    cpu_percent: float
    memory_total: int
    memory_used: int
    memory_free: int
    memory_percent: float


@dataclass(frozen=True)
class CombinedSnapshot:
    process: ProcessSnapshot
    system: SystemSnapshot
    timestamp: datetime = field(default_factory=datetime.now)

    def process_age(self) -> Optional[float]:
        """Seconds between process start and capture, or None if the start time is unknown."""
        if self.process.create_time <= 0:
            return None
        return max(0.0, self.timestamp.timestamp() - self.process.create_time)


@dataclass(frozen=True)
class Probe(Generic[T]):
    """Outcome of a single attribute read: a value, or nothing if the read failed."""

    value: Optional[T] = None
    ok: bool = False


def gather_snapshot(pid: int) -> CombinedSnapshot:
    """Collect process and system state over one shared CPU sampling window."""
    proc = _lookup(pid)
    primed = _probe("cpu_percent", lambda: proc.cpu_percent(None))
    system = gather_system()
    cpu = _probe("cpu_percent", lambda: proc.cpu_percent(None)) if primed.ok else primed
    process = _read_process(proc, cpu)
    return CombinedSnapshot(process=process, system=system, timestamp=datetime.now())


def gather_process(pid: int, cpu_interval: float = PROCESS_CPU_INTERVAL) -> ProcessSnapshot:
    proc = _lookup(pid)
    cpu = _probe("cpu_percent", lambda: proc.cpu_percent(interval=cpu_interval))
    return _read_process(proc, cpu)


def gather_system(interval: float = SYSTEM_CPU_INTERVAL) -> SystemSnapshot:
    try:
        cpu_count = psutil.cpu_count(logical=True)
        cpu_percent = psutil.cpu_percent(interval=interval)
        memory = psutil.virtual_memory()
    except (psutil.Error, OSError) as exc:
        raise CollectionError(f"failed to collect system info: {exc}") from exc
    if not cpu_count:
        raise CollectionError("failed to collect system info: logical CPU count unavailable")

    return SystemSnapshot(
        cpu_count=cpu_count,
        cpu_model=_cpu_model(),
        cpu_percent=cpu_percent,
        memory_total=memory.total,
        memory_used=memory.used,
        memory_free=memory.free,
        memory_percent=memory.percent,
    )


def _lookup(pid: int) -> psutil.Process:
    if pid <= 0:
        raise ProcessNotFoundError(pid)
    try:
        return psutil.Process(pid)
    except psutil.NoSuchProcess as exc:
        raise ProcessNotFoundError(pid) from exc


def _read_process(proc: psutil.Process, cpu: Probe[float]) -> ProcessSnapshot:
    with proc.oneshot():
        probes = {
            "name": _probe("name", proc.name),
            "exe": _probe("exe", proc.exe),
            "cmdline": _probe("cmdline", lambda: " ".join(proc.cmdline())),
            "cwd": _probe("cwd", proc.cwd),
            "status": _probe("status", lambda: ProcessStatus.from_os(proc.status())),
            "cpu_percent": Probe(max(0.0, cpu.value), True) if cpu.ok else cpu,
            "memory_rss": _probe("memory_rss", lambda: proc.memory_info().rss),
            "memory_vms": _probe("memory_vms", lambda: proc.memory_info().vms),
            "memory_percent": _probe("memory_percent", proc.memory_percent),
            "create_time": _probe("create_time", proc.create_time),
            "open_files": _probe("open_files", lambda: _count_descriptors(proc)),
            "connections": _probe("connections", lambda: len(proc.net_connections(kind="inet"))),
            "children": _probe("children", lambda: len(proc.children())),
        }

    present = {name: probe.value for name, probe in probes.items() if probe.ok and probe.value is not None}
    unavailable = tuple(name for name in probes if name not in present)
    return ProcessSnapshot(pid=proc.pid, unavailable=unavailable, **present)


def _probe(name: str, read: Callable[[], T]) -> Probe[T]:
    try:
        return Probe(read(), True)
    except (psutil.Error, OSError) as exc:
        logger.debug("could not read %s: %s", name, exc)
        return Probe()


def _count_descriptors(proc: psutil.Process) -> int:
    if hasattr(proc, "num_fds"):
        return proc.num_fds()
    return len(proc.open_files())


def _cpu_model() -> str:
    cpuinfo = Path("/proc/cpuinfo")
    if cpuinfo.is_file():
        try:
            for line in cpuinfo.read_text().splitlines():
                if line.startswith("model name"):
                    return line.split(":", 1)[1].strip()
        except OSError as exc:
            logger.debug("could not read %s: %s", cpuinfo, exc)
    return platform.processor()
