"""Logging for the quest client.

Every record leaving a handler carries one ``fields`` dict, merged from the
ambient ``log_context()`` (quest, request id, frame direction) and the keyword
fields of ``log_event()``. The REPL owns the terminal, so output goes to a
rotating file; ``ACPQUEST_LOG_STDERR`` adds stderr for debugging.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, Mapping

from acpquest.paths import log_dir

LOG_FILE_NAME = "acpquest.log"
LINE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# third-party loggers that chatter at DEBUG about every frame
QUIET_LOGGERS = ("websockets",)

_TRUTHY = frozenset({"1", "true", "yes", "on"})

_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("acpquest_log_context", default={})
_frames_enabled = False


@dataclass(frozen=True)
class LogConfig:
    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    frames: bool = False
    max_bytes: int = 5_000_000
    backups: int = 3

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> LogConfig:
        """Read ``ACPQUEST_LOG_*``; values that do not parse keep the default."""
        env = os.environ if env is None else env
        directory = Path(env.get("ACPQUEST_LOG_DIR") or log_dir())
        directory.mkdir(parents=True, exist_ok=True)
        defaults = cls(log_file=directory / LOG_FILE_NAME)

        def flag(name: str) -> bool:
            return env.get(f"ACPQUEST_LOG_{name}", "").strip().lower() in _TRUTHY

        def number(name: str, default: int) -> int:
            raw = env.get(f"ACPQUEST_LOG_{name}", "").strip()
            return int(raw) if raw.isdigit() else default

        return cls(
            log_file=defaults.log_file,
            level=_level(env.get("ACPQUEST_LOG_LEVEL"), defaults.level),
            stderr=flag("STDERR"),
            json=flag("JSON"),
            frames=flag("FRAMES"),
            max_bytes=number("MAX_BYTES", defaults.max_bytes),
            backups=number("BACKUPS", defaults.backups),
        )


def _level(raw: str | None, default: int) -> int:
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(config: LogConfig) -> None:
    """Install the client's handlers on the root logger, replacing any present."""
    global _frames_enabled
    _frames_enabled = config.frames

    handlers: list[logging.Handler] = [
        RotatingFileHandler(config.log_file, maxBytes=config.max_bytes, backupCount=config.backups, encoding="utf-8")
    ]
    if config.stderr:
        handlers.append(logging.StreamHandler())
    formatter = JsonFormatter() if config.json else KeyValueFormatter(LINE_FORMAT)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(FieldsFilter())
        root.addHandler(handler)
    root.setLevel(config.level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(config.level, logging.WARNING))


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Tag every record logged inside the block; None values are skipped."""
    token = _context.set({**_context.get(), **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        _context.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    logger.log(level, event, extra={"event_fields": fields})


def log_frame(logger: logging.Logger, direction: str, raw: str | bytes) -> None:
    """Log one raw wire frame at DEBUG; a no-op unless ``ACPQUEST_LOG_FRAMES`` is set."""
    if not _frames_enabled:
        return
    text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
    log_event(logger, "frame", level=logging.DEBUG, direction=direction, size=len(text), body=text)


class FieldsFilter(logging.Filter):
    """Attach the merged context and event fields to the record as ``fields``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        record.fields = {**_context.get(), **getattr(record, "event_fields", {})}
        return True


def _render(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    text = str(value)
    if not text or any(ch.isspace() or ch in '="' for ch in text):
        return json.dumps(text)
    return text


class KeyValueFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "fields", {})
        pairs = " ".join(f"{key}={_render(fields[key])}" for key in sorted(fields) if fields[key] is not None)
        return f"{line} {pairs}" if pairs else line


class JsonFormatter(logging.Formatter):
    """One JSON object per line, fields inlined next to the message."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **getattr(record, "fields", {}),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)
