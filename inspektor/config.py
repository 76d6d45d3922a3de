"""Runtime settings read once from the environment and an optional ``.env`` file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import dotenv_values

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 30.0
DEFAULT_TEMPERATURE = 0.3

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT
    temperature: float = DEFAULT_TEMPERATURE
    ai_enabled: bool = True

    @property
    def ai_configured(self) -> bool:
        return self.ai_enabled and bool(self.api_key)


def load_settings(
    env_file: Union[str, Path, None] = ".env",
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from ``env_file`` overlaid by ``environ`` (defaults to ``os.environ``).

    The dotenv file is only read, never exported into the process environment.
    """
    values = {}
    if env_file is not None and Path(env_file).is_file():
        values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    values.update(os.environ if environ is None else environ)

    def _get(key: str, default: str = "") -> str:
        return (values.get(key) or default).strip()

    return Settings(
        api_key=_get("GEMINI_API_KEY"),
        model=_get("GEMINI_MODEL", DEFAULT_MODEL),
        endpoint=_get("GEMINI_ENDPOINT", DEFAULT_ENDPOINT).rstrip("/"),
        timeout=_parse_timeout(_get("INSPEKTOR_AI_TIMEOUT")),
        ai_enabled=_get("INSPEKTOR_DISABLE_AI").lower() not in _TRUTHY,
    )


def _parse_timeout(raw: str) -> float:
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT
    return value if value > 0 else DEFAULT_TIMEOUT
