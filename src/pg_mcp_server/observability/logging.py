"""Logging setup for PostgreSQL MCP Server.

Records are written to stdout either as one JSON object per line or as
plain text. Every record carries the session and tool call it was emitted
for (see ``tracing.ContextFilter``), and values under secret-looking keys
are masked before they are formatted.
"""

import json
import logging
import sys
from typing import Any

from pg_mcp_server.observability.tracing import ContextFilter

REDACTED = "***REDACTED***"

# Loggers of libraries that are chatty at INFO
QUIET_LOGGERS = ("asyncpg", "mcp", "sse_starlette", "uvicorn.access")

# Attributes every LogRecord carries; anything else was passed via ``extra``.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "session_id", "request_id"}


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in ("session_id", "request_id")
        if getattr(record, key, None) is not None
    }


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS}


class SensitiveDataFilter(logging.Filter):
    """Mask values stored under secret-looking keys.

    Both ``extra`` attributes and mapping arguments of the message are
    scanned, recursively.
    """

    SENSITIVE_KEYS: frozenset[str] = frozenset(
        {
            "password",
            "passwd",
            "pwd",
            "secret",
            "token",
            "access_token",
            "private_key",
            "auth",
            "authorization",
        }
    )

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.args = self._redact(record.args)
        for key in list(_extra_fields(record)):
            value = getattr(record, key)
            setattr(record, key, REDACTED if self._is_sensitive(key) else self._redact(value))
        return True

    def _is_sensitive(self, key: Any) -> bool:
        return isinstance(key, str) and key.lower() in self.SENSITIVE_KEYS

    def _redact(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: REDACTED if self._is_sensitive(key) else self._redact(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return type(value)(self._redact(item) for item in value)
        return value


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Example:
        >>> handler = logging.StreamHandler()
        >>> handler.setFormatter(JSONFormatter())
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            **_context_fields(record),
        }
        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Single-line human-readable output for development."""

    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{self.formatTime(record, self.datefmt)} [{record.levelname}] "
            f"{record.name} - {record.getMessage()}"
        )
        context = _context_fields(record)
        if "session_id" in context:
            line += f" [session={context['session_id']}]"
        if "request_id" in context:
            line += f" [request_id={context['request_id']}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    log_format: str = "json",
    enable_sensitive_filter: bool = True,
) -> None:
    """Install the stdout handler on the root logger.

    Any handler already attached to the root logger is replaced, and uvicorn's
    own loggers are routed through it.

    Args:
        level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: ``"json"`` or ``"text"``.
        enable_sensitive_filter: Mask secret-looking values.

    Example:
        >>> configure_logging(level="DEBUG", log_format="text")
        >>> logging.getLogger(__name__).info("Session opened")
    """
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(TextFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(ContextFilter())
    if enable_sensitive_filter:
        handler.addFilter(SensitiveDataFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
