from datetime import datetime

import pytest

from inspektor.system_state import CombinedSnapshot, ProcessSnapshot, ProcessStatus, SystemSnapshot

MB = 1024**2
GB = 1024**3
CAPTURED_AT = datetime(2026, 1, 15, 12, 0, 0)


def make_snapshot(
    *,
    cpu_percent: float = 5,
    memory_percent: float = 1,
    memory_rss: int = 100 * MB,
    memory_vms: int = 200 * MB,
    status: ProcessStatus = ProcessStatus.SLEEPING,
    age: float = 3600,
    open_files: int = 12,
    connections: int = 3,
    children: int = 0,
    system_cpu_percent: float = 20,
    cpu_count: int = 8,
    memory_total: int = 16 * GB,
    memory_used: int = 6 * GB,
    memory_free: int = 8 * GB,
    system_memory_percent: float = 40,
    unavailable=(),
) -> CombinedSnapshot:
    create_time = CAPTURED_AT.timestamp() - age if age is not None else 0.0
    return CombinedSnapshot(
        process=ProcessSnapshot(
            pid=4242,
            name="api-server",
            exe="/usr/local/bin/api-server",
            cmdline="/usr/local/bin/api-server --port 8080",
            cwd="/srv/api",
            status=status,
            cpu_percent=cpu_percent,
            memory_rss=memory_rss,
            memory_vms=memory_vms,
            memory_percent=memory_percent,
            create_time=create_time,
            open_files=open_files,
            connections=connections,
            children=children,
            unavailable=tuple(unavailable),
        ),
        system=SystemSnapshot(
            cpu_count=cpu_count,
            cpu_model="Test CPU @ 3.00GHz",
            cpu_percent=system_cpu_percent,
            memory_total=memory_total,
            memory_used=memory_used,
            memory_free=memory_free,
            memory_percent=system_memory_percent,
        ),
        timestamp=CAPTURED_AT,
    )


@pytest.fixture
def snapshot_factory():
    return make_snapshot
