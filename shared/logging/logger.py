"""Structured logging with correlation ID support.

This module provides:
- JSON formatted logs for log aggregation
- A readable, coloured text format for local development
- Correlation ID tracking across async request handling
"""

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator
from uuid import uuid4

# Correlation ID of the request currently being handled
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)

# Third-party loggers that are too chatty at INFO
DEFAULT_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Emits one JSON object per record, with ``extra`` fields nested under
    an ``extra`` key so that they never clash with the fixed fields.
    """

    def __init__(self, service: str | None = None) -> None:
        """Initialize the JSON formatter.

        Args:
            service: Optional service name stamped on every record.
        """
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        if self.service:
            log_data["service"] = self.service

        correlation_id = _correlation_id.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development.

    Extra fields are appended as ``key=value`` pairs.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as readable text.

        Args:
            record: The log record to format.

        Returns:
            Formatted log string.
        """
        color = self.COLORS.get(record.levelname, "")
        correlation_id = _correlation_id.get()
        correlation_part = f"[{correlation_id[:8]}] " if correlation_id else ""

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )

        extra = _extra_fields(record)
        extra_part = (
            " " + " ".join(f"{key}={value}" for key, value in extra.items())
            if extra
            else ""
        )

        line = (
            f"{color}{timestamp} | {record.levelname:8} | "
            f"{correlation_part}{record.name} | {record.getMessage()}"
            f"{extra_part}{self.RESET}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: str = "INFO",
    format_type: str = "json",
    service: str | None = None,
    quiet_loggers: tuple[str, ...] = DEFAULT_QUIET_LOGGERS,
) -> None:
    """Configure root logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_type: Output format ('json' or 'text').
        service: Service name added to JSON records.
        quiet_loggers: Loggers raised to WARNING to reduce noise.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if format_type.lower() == "json":
        handler.setFormatter(JSONFormatter(service=service))
    else:
        handler.setFormatter(TextFormatter())
    root.addHandler(handler)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def with_correlation_id(correlation_id: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block.

    Args:
        correlation_id: Optional correlation ID. If None, generates a new UUID.

    Yields:
        The correlation ID being used.
    """
    cid = correlation_id or str(uuid4())
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def get_correlation_id() -> str | None:
    """Get the current correlation ID, if any."""
    return _correlation_id.get()
