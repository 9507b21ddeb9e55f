"""
Structured logging for caproute.

Engine events are emitted as one JSON object per record through the
standard ``logging`` module, so applications decide where they go.
The library never touches the root logger.

Each record carries:
- timestamp (ISO 8601, UTC)
- level
- message: a dotted event name such as ``resolution.cache_hit``
- context fields

Keys that look like credentials are redacted before serialisation.

Usage:
    log = JSONLogger(__name__)
    log.debug("resolution.batch_start", count=3)

    step_log = log.with_context(step=2, capability_id="issue.close")
    step_log.error("resolution.inject_failed", error="...")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

ROOT_LOGGER_NAME = "caproute"
REDACTED = "[redacted]"
_SENSITIVE_MARKERS = ("token", "secret", "authorization", "password", "credential")


class LogLevel(Enum):
    """Standard log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def redact(value: Any) -> Any:
    """Replace credential-looking entries in nested dicts and lists."""
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive(str(key)) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted logs.

    Example output:
        {"timestamp": "2026-01-02T10:30:00+00:00", "level": "debug",
         "message": "mutation.batch_start", "count": 2}
    """

    name: str = ROOT_LOGGER_NAME
    extra_context: dict[str, Any] = field(default_factory=dict)
    _python_logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        python_level = getattr(logging, level.name)
        if not self._python_logger.isEnabledFor(python_level):
            return

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "message": message,
            **redact(self.extra_context),
            **redact(context),
        }
        self._python_logger.log(python_level, json.dumps(record, default=str))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)

    def with_context(self, **extra: Any) -> JSONLogger:
        """Create a new logger with additional context."""
        return JSONLogger(name=self.name, extra_context={**self.extra_context, **extra})


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """
    Attach a stream handler to the ``caproute`` logger.

    Records are already JSON, so the handler prints the message as-is.
    Calling this twice does not add a second handler.
    """
    if level is None:
        from .config import get_settings

        level = get_settings().log_level

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not any(getattr(handler, "_caproute", False) for handler in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._caproute = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)

    return package_logger
