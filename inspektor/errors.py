"""Exceptions raised by the inspection pipeline."""

from __future__ import annotations


class InspektorError(Exception):
    """Base class for every failure the CLI reports to the user."""


class ProcessNotFoundError(InspektorError):
    def __init__(self, pid: int) -> None:
        super().__init__(f"no process with pid {pid}")
        self.pid = pid


class CollectionError(InspektorError):
    """System-wide metrics could not be read."""


class PortLookupError(InspektorError):
    def __init__(self, port: int, message: str) -> None:
        super().__init__(message)
        self.port = port


class InvalidPortError(PortLookupError, ValueError):
    def __init__(self, port: int) -> None:
        super().__init__(port, f"invalid port {port!r}: expected 1-65535")


class NoListenerError(PortLookupError):
    def __init__(self, port: int) -> None:
        super().__init__(port, f"no process found listening on port {port}")


class NoValidProcessError(PortLookupError):
    def __init__(self, port: int) -> None:
        super().__init__(port, f"no valid process found listening on port {port}")


class AIBackendError(InspektorError):
    """The AI backend did not produce a usable reply."""


class MalformedResponseError(AIBackendError):
    pass
