"""Listener logging configuration.

This module provides structured logging for the listener:
- JSON-formatted log output for easy parsing by log aggregation systems
- Human-readable text output with the structured fields appended
- Verbosity selection from the --debug / --verbose flags
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# LogRecord attributes that are not user-supplied "extra" fields
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    extra = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or value is None:
            continue
        try:
            json.dumps(value)
            extra[key] = value
        except (TypeError, ValueError):
            extra[key] = str(value)
    return extra


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Formats log records as JSON objects with consistent fields:
    - timestamp: ISO8601 formatted timestamp
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - service: Always "esxmon" for identification
    - extra: Additional context fields (event category, VM name, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": "esxmon",
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


class TextFormatter(logging.Formatter):
    """Text log formatter (interactive use).

    Provides a human-readable format:
    [timestamp] LEVEL    logger: message key=value ...
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as text."""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        message = f"[{timestamp}] {record.levelname:8} {record.name}: {record.getMessage()}"

        extra = _extra_fields(record)
        if extra:
            message += " " + " ".join(f"{key}={value}" for key, value in extra.items())

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def resolve_log_level(debug: bool = False, verbose: bool = False) -> int:
    """Map the verbosity flags to a log level; debug wins over verbose."""
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return logging.WARNING


def setup_logging(debug: bool = False, verbose: bool = False, log_format: str = "text") -> None:
    """Configure the root logger.

    Sets up the root logger with a single stdout handler using either JSON or
    text formatting.

    Args:
        debug: Enable debug output (includes error cause chains)
        verbose: Enable informational output (one line per recognized event)
        log_format: "json" or "text"
    """
    handler = logging.StreamHandler(sys.stdout)

    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(resolve_log_level(debug, verbose))

    # Remove existing handlers
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("pyVmomi").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
