"""System logger for operational events.

This module provides a singleton system logger for all broker events
(cache hits and misses, refresh outcomes, device-flow polling, upstream
failures).

Logging strategy:
- Console (stderr): WARNING and above by default, DEBUG when
  IDAAS_BROKER_DEBUG is switched on
- File (system.jsonl): Only issues (WARNING, ERROR, CRITICAL), added by
  configure_system_logger_file() for long-running serve processes

Messages are dicts with at least "event" and "message" keys. Token
material is never logged; raw upstream bodies are logged only when
IDAAS_BROKER_UNSAFE_DEBUG is switched on (see log_unsafe()).
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "JsonlFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "log_unsafe",
]

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from idaas_broker.constants import APP_NAME, ENV_DEBUG, ENV_UNSAFE_DEBUG
from idaas_broker.utils.env import env_flag
from idaas_broker.utils.file_helpers import set_secure_permissions


class ConsoleFormatter(logging.Formatter):
    """Renders "LEVEL: text" for stderr, where text is the event's "message" (or its name)."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            text = record.msg.get("message") or record.msg.get("event", "")
        else:
            text = record.getMessage()
        return f"{record.levelname}: {text}"


class JsonlFormatter(logging.Formatter):
    """One JSON object per line: time (UTC, milliseconds), level, then the event fields.

    Example line:
        {"time": "2026-10-19T08:12:01.532Z", "level": "WARNING", "event": "token_refresh_failed", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds")
        fields = record.msg if isinstance(record.msg, dict) else {"message": record.getMessage()}
        entry: dict[str, Any] = {"time": timestamp.replace("+00:00", "Z"), "level": record.levelname, **fields}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_system_logger: logging.Logger | None = None
_file_handler_configured: bool = False


def get_system_logger() -> logging.Logger:
    """Return the process-wide system logger, creating it on first use.

    Only the stderr handler is attached here. serve adds the JSONL file
    handler through configure_system_logger_file().

    Example:
        >>> get_system_logger().warning({"event": "refresh_failed", "message": "..."})
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    console_level = logging.DEBUG if env_flag(ENV_DEBUG) or env_flag(ENV_UNSAFE_DEBUG) else logging.WARNING

    _system_logger = logging.getLogger(f"{APP_NAME}.system")
    _system_logger.setLevel(logging.DEBUG)
    _system_logger.propagate = False

    for handler in _system_logger.handlers:
        handler.close()
    _system_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(console_level)
    stderr_handler.setFormatter(ConsoleFormatter())
    _system_logger.addHandler(stderr_handler)

    return _system_logger


def configure_system_logger_file(log_path: Path) -> None:
    """Add a JSONL file handler (WARNING and above) to the system logger.

    Called once by long-running commands (serve). Subsequent calls are no-ops.

    Args:
        log_path: Path to the system log file.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    logger = get_system_logger()

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        set_secure_permissions(log_path.parent, is_directory=True)
    except OSError:
        pass  # stderr still works

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(JsonlFormatter())
    logger.addHandler(file_handler)

    _file_handler_configured = True


def log_unsafe(event: str, message: str, **fields: Any) -> None:
    """Log a DEBUG event that may carry secret material.

    Dropped unless IDAAS_BROKER_UNSAFE_DEBUG is switched on.
    """
    if not env_flag(ENV_UNSAFE_DEBUG):
        return
    get_system_logger().debug({"event": event, "message": message, "unsafe": True, **fields})
