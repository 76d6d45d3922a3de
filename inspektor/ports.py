"""Find the process that owns a listening socket."""

from __future__ import annotations

import logging
from typing import List, Optional

import psutil

from .errors import CollectionError, InvalidPortError, NoListenerError, NoValidProcessError

logger = logging.getLogger(__name__)


def resolve_by_port(port: int) -> int:
    """Return the pid of a live process listening on ``port`` (TCP or UDP, IPv4 or IPv6).

    Candidates are tried in the order the OS reports them. When several
    processes listen on the same port the answer is whichever comes first,
    which is not stable across runs.
    """
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
        raise InvalidPortError(port)

    candidates = _listening_pids(port)
    if not candidates:
        raise NoListenerError(port)

    for pid in candidates:
        if pid is None or pid <= 0:
            continue
        if psutil.pid_exists(pid):
            logger.debug("port %d resolved to pid %d", port, pid)
            return pid
        logger.debug("pid %d listening on port %d has exited", pid, port)

    raise NoValidProcessError(port)


def _listening_pids(port: int) -> List[Optional[int]]:
    try:
        connections = psutil.net_connections(kind="inet")
    except (psutil.Error, OSError) as exc:
        raise CollectionError(f"failed to get network connections: {exc}") from exc

    return [
        conn.pid
        for conn in connections
        if conn.laddr and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN
    ]
