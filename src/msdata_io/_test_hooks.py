"""Test hooks for msdata_io config - allows injecting test dependencies."""

from __future__ import annotations

import os
from collections.abc import Callable


def _default_get_env(key: str) -> str | None:
    """Production implementation - reads from os.environ."""
    return os.getenv(key)


# Hook for environment variable access. Tests can override to provide fake values.
get_env: Callable[[str], str | None] = _default_get_env
