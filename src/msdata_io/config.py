"""Environment-driven settings for readers and writers.

All variables are optional; unset or blank values fall back to defaults.
Malformed values raise ValueError rather than being ignored.
"""

from __future__ import annotations

from typing import Literal, TypedDict

from msdata_io import _test_hooks
from msdata_io.logging import LogFormat, LogLevel
from msdata_io.types.common import ErrorPolicy

IndexMode = Literal["embedded", "sidecar", "both", "none"]
DefaultCompression = Literal["none", "zlib"]

DEFAULT_CHUNK_SIZE = 1 << 20

_ENV_PREFIX = "MSDATA_IO_"


class IOSettings(TypedDict):
    """Settings shared by readers and writers.

    Attributes:
        chunk_size: Bytes read per physical read while scanning.
        error_policy: "skip" logs record-scoped errors and continues,
            "raise" propagates them.
        index_mode: Where writers persist the offset index.
        default_compression: Compression writers use when a record does not
            request one.
        log_level: Level passed to setup_logging by applications.
        log_format: Format passed to setup_logging by applications.
    """

    chunk_size: int
    error_policy: ErrorPolicy
    index_mode: IndexMode
    default_compression: DefaultCompression
    log_level: LogLevel
    log_format: LogFormat


def _optional_env_str(key: str) -> str | None:
    value = _test_hooks.get_env(key)
    if value is None:
        return None
    trimmed = value.strip()
    if trimmed == "":
        return None
    return trimmed


def _parse_int(key: str, default: int) -> int:
    val = _optional_env_str(key)
    if val is None:
        return default
    parsed = int(val)
    if parsed <= 0:
        raise ValueError(f"{key} must be positive, got {parsed}")
    return parsed


def _parse_error_policy(key: str, default: ErrorPolicy) -> ErrorPolicy:
    val = _optional_env_str(key)
    if val is None:
        return default
    lowered = val.lower()
    if lowered == "skip":
        return "skip"
    if lowered == "raise":
        return "raise"
    raise ValueError(f"Invalid error policy for {key}: {val!r}")


def _parse_index_mode(key: str, default: IndexMode) -> IndexMode:
    val = _optional_env_str(key)
    if val is None:
        return default
    lowered = val.lower()
    if lowered == "embedded":
        return "embedded"
    if lowered == "sidecar":
        return "sidecar"
    if lowered == "both":
        return "both"
    if lowered == "none":
        return "none"
    raise ValueError(f"Invalid index mode for {key}: {val!r}")


def _parse_compression(key: str, default: DefaultCompression) -> DefaultCompression:
    val = _optional_env_str(key)
    if val is None:
        return default
    lowered = val.lower()
    if lowered == "none":
        return "none"
    if lowered == "zlib":
        return "zlib"
    raise ValueError(f"Invalid default compression for {key}: {val!r}")


def _parse_log_level(key: str, default: LogLevel) -> LogLevel:
    val = _optional_env_str(key)
    if val is None:
        return default
    upper_val = val.upper()
    if upper_val == "DEBUG":
        return "DEBUG"
    if upper_val == "INFO":
        return "INFO"
    if upper_val == "WARNING":
        return "WARNING"
    if upper_val == "ERROR":
        return "ERROR"
    if upper_val == "CRITICAL":
        return "CRITICAL"
    raise ValueError(f"Invalid log level for {key}: {val!r}")


def _parse_log_format(key: str, default: LogFormat) -> LogFormat:
    val = _optional_env_str(key)
    if val is None:
        return default
    lowered = val.lower()
    if lowered == "json":
        return "json"
    if lowered == "text":
        return "text"
    raise ValueError(f"Invalid log format for {key}: {val!r}")


def load_settings() -> IOSettings:
    """Load settings from MSDATA_IO_* environment variables.

    Returns:
        IOSettings TypedDict.

    Raises:
        ValueError: If a variable is set to an invalid value.
    """
    return {
        "chunk_size": _parse_int(f"{_ENV_PREFIX}CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        "error_policy": _parse_error_policy(f"{_ENV_PREFIX}ERROR_POLICY", "skip"),
        "index_mode": _parse_index_mode(f"{_ENV_PREFIX}INDEX_MODE", "embedded"),
        "default_compression": _parse_compression(f"{_ENV_PREFIX}DEFAULT_COMPRESSION", "zlib"),
        "log_level": _parse_log_level(f"{_ENV_PREFIX}LOG_LEVEL", "INFO"),
        "log_format": _parse_log_format(f"{_ENV_PREFIX}LOG_FORMAT", "text"),
    }


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DefaultCompression",
    "ErrorPolicy",
    "IOSettings",
    "IndexMode",
    "load_settings",
]
