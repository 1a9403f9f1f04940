"""JSON serialization bridge for side-car index files.

Keeps json.loads results inside the JSONValue union so callers narrow
values explicitly instead of trusting untyped payloads.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence

JSONValue = dict[str, "JSONValue"] | list["JSONValue"] | str | int | float | bool | None

_JSONInputValue = str | int | float | bool | None | Mapping[str, object] | Sequence[object]


class InvalidJsonError(ValueError):
    """Raised when JSON parsing fails or yields an unexpected shape."""


def dump_json_str(value: _JSONInputValue, *, compact: bool = True) -> str:
    """Serialize a JSON-compatible value to a JSON string.

    Args:
        value: JSON-serializable value.
        compact: If True (default), produce compact JSON without extra whitespace.
    """
    if compact:
        return json.dumps(value, separators=(",", ":"))
    return json.dumps(value, indent=2)


def load_json_str(raw: str) -> JSONValue:
    """Parse a JSON document.

    Raises:
        InvalidJsonError: If the payload is not valid JSON.
    """
    try:
        value: JSONValue = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidJsonError("Invalid JSON payload") from exc
    return value


def narrow_json_to_dict(value: JSONValue) -> dict[str, JSONValue]:
    """Narrow a JSON value to an object.

    Raises:
        InvalidJsonError: If the value is not an object.
    """
    if not isinstance(value, dict):
        raise InvalidJsonError(f"Expected JSON object, got {type(value).__name__}")
    return value


def narrow_json_to_list(value: JSONValue) -> list[JSONValue]:
    """Narrow a JSON value to an array.

    Raises:
        InvalidJsonError: If the value is not an array.
    """
    if not isinstance(value, list):
        raise InvalidJsonError(f"Expected JSON array, got {type(value).__name__}")
    return value


def require_str(obj: dict[str, JSONValue], key: str) -> str:
    """Extract a required string field."""
    value = obj.get(key)
    if not isinstance(value, str):
        raise InvalidJsonError(f"Field '{key}' must be a string")
    return value


def require_int(obj: dict[str, JSONValue], key: str) -> int:
    """Extract a required integer field (booleans rejected)."""
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidJsonError(f"Field '{key}' must be an integer")
    return value


def optional_int(obj: dict[str, JSONValue], key: str) -> int | None:
    """Extract an optional integer field."""
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidJsonError(f"Field '{key}' must be an integer or null")
    return value


def optional_str(obj: dict[str, JSONValue], key: str) -> str | None:
    """Extract an optional string field."""
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidJsonError(f"Field '{key}' must be a string or null")
    return value


__all__ = [
    "InvalidJsonError",
    "JSONValue",
    "dump_json_str",
    "load_json_str",
    "narrow_json_to_dict",
    "narrow_json_to_list",
    "optional_int",
    "optional_str",
    "require_int",
    "require_str",
]
