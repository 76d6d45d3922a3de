"""
Single-shot process inspector that snapshots one process and its host, then explains what looks wrong.
"""

__all__ = ["analyzer", "config", "diagnostics", "errors", "formatting", "inspector", "ports", "system_state", "cli"]
__version__ = "0.1.0"
