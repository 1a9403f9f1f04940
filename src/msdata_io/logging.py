"""Logging helpers for msdata_io.

Library modules obtain loggers through get_logger(__name__) and never
configure handlers themselves. Applications embedding the library call
setup_logging() once, choosing JSON output for pipelines or text output
for interactive use.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Literal, Protocol, TypedDict

LogFormat = Literal["json", "text"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

JSONScalar = str | int | float | bool | None

# Structured fields attached to records via logger.*(..., extra={...}).
_STRUCTURED_FIELDS: tuple[str, ...] = (
    "source",
    "record_id",
    "record_kind",
    "offset",
    "strategy",
    "error_type",
    "role",
    "count",
)


class _LogRecordMapping(Protocol):
    """Minimal mapping interface for LogRecord.__dict__."""

    def __contains__(self, key: str) -> bool: ...

    def __getitem__(self, key: str) -> object: ...


class _MissingValue:
    """Sentinel for absent or non-scalar LogRecord attributes."""

    __slots__ = ()


_MISSING = _MissingValue()


def _get_scalar_record_value(record: logging.LogRecord, field_name: str) -> JSONScalar | _MissingValue:
    """Fetch a record attribute and validate it is a JSON scalar."""
    record_mapping: _LogRecordMapping = record.__dict__
    if field_name not in record_mapping:
        return _MISSING
    raw_value = record_mapping[field_name]
    if isinstance(raw_value, (str, int, float, bool)) or raw_value is None:
        return raw_value
    return _MISSING


class LogEventFields(TypedDict, total=False):
    """Optional structured fields for msdata_io log events."""

    source: str
    record_id: str
    record_kind: str
    offset: int
    strategy: str
    error_type: str
    role: str
    count: int


class JsonFormatter(logging.Formatter):
    """JSON formatter producing one object per line.

    Output contains:
    - ISO8601 timestamp (UTC)
    - level, logger, message
    - static fields given at construction
    - structured msdata_io fields when present on the record
    - exception info if present
    """

    def __init__(self, *, static_fields: dict[str, str]) -> None:
        """Initialize JSON formatter.

        Args:
            static_fields: Fields to include in every log record.
        """
        super().__init__()
        self._static = static_fields

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        payload: dict[str, JSONScalar] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._static:
            payload[key] = self._static[key]

        for field_name in _STRUCTURED_FIELDS:
            if field_name in payload:
                continue
            field_value = _get_scalar_record_value(record, field_name)
            if isinstance(field_value, _MissingValue):
                continue
            payload[field_name] = field_value

        if record.exc_info is not None:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """Human-readable text formatter.

    Format: [timestamp] [LEVEL] [logger] [field=value ...] message
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as human-readable text."""
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        parts: list[str] = [
            f"[{timestamp}]",
            f"[{record.levelname}]",
            f"[{record.name}]",
        ]

        for field_name in _STRUCTURED_FIELDS:
            field_value = _get_scalar_record_value(record, field_name)
            if isinstance(field_value, _MissingValue):
                continue
            parts.append(f"{field_name}={field_value}")

        parts.append(record.getMessage())
        line = " ".join(parts)

        if record.exc_info is not None:
            line = line + "\n" + self.formatException(record.exc_info)

        return line


def _level_to_int(level: LogLevel) -> int:
    """Convert string log level to integer constant."""
    level_map: dict[LogLevel, int] = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map[level]


def setup_logging(
    *,
    level: LogLevel,
    format_mode: LogFormat,
    app_name: str,
) -> logging.Logger:
    """Configure the "msdata_io" logger hierarchy for an application.

    Clears handlers previously installed by this function so repeated calls
    leave exactly one handler.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_mode: "json" for pipelines, "text" for interactive use.
        app_name: Application name included in every JSON log line.

    Returns:
        The configured package logger.

    Example:
        >>> from msdata_io.logging import setup_logging
        >>> logger = setup_logging(level="INFO", format_mode="text", app_name="mzcat")
        >>> logger.info("Indexing started")
    """
    logger = logging.getLogger("msdata_io")
    logger.handlers.clear()
    logger.setLevel(_level_to_int(level))
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    if format_mode == "json":
        handler.setFormatter(JsonFormatter(static_fields={"app": app_name}))
    else:
        handler.setFormatter(TextFormatter())
    logger.addHandler(handler)

    return logger


# Expose stdlib logging module for typed test utilities.
stdlib_logging = logging


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance by name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


__all__ = [
    "JsonFormatter",
    "LogEventFields",
    "LogFormat",
    "LogLevel",
    "TextFormatter",
    "get_logger",
    "setup_logging",
    "stdlib_logging",
]
