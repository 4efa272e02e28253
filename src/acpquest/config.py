"""Client settings loaded from the environment and optional .env files."""

from __future__ import annotations

import contextlib
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from acpquest.paths import config_dir

DEFAULT_URL = "ws://localhost:8080/ws/acp"
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_RECONNECT_BASE_DELAY = 1.0
DEFAULT_RECONNECT_MAX_DELAY = 30.0


@dataclass(frozen=True)
class ClientSettings:
    url: str = DEFAULT_URL
    cwd: str = ""
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS
    reconnect_base_delay: float = DEFAULT_RECONNECT_BASE_DELAY
    reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY

    def with_overrides(self, **overrides: Any) -> "ClientSettings":
        """Return a copy with every non-None override applied (CLI flags win)."""
        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return max(0, int(value))
    return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return max(0.0, float(value))
    return default


def load_settings(env_file: Path | None = None) -> ClientSettings:
    """Read ACPQUEST_* variables after loading the app and working-dir .env files.

    Variables already present in the process environment are never overridden.
    """

    load_dotenv(env_file or config_dir() / ".env", override=False)
    load_dotenv(Path.cwd() / ".env", override=False)
    return ClientSettings(
        url=os.getenv("ACPQUEST_URL") or DEFAULT_URL,
        cwd=os.getenv("ACPQUEST_CWD") or os.getcwd(),
        max_reconnect_attempts=_env_int("ACPQUEST_MAX_RECONNECT_ATTEMPTS", DEFAULT_MAX_RECONNECT_ATTEMPTS),
        reconnect_base_delay=_env_float("ACPQUEST_RECONNECT_BASE_DELAY", DEFAULT_RECONNECT_BASE_DELAY),
        reconnect_max_delay=_env_float("ACPQUEST_RECONNECT_MAX_DELAY", DEFAULT_RECONNECT_MAX_DELAY),
    )
