"""Environment variable helpers."""

from __future__ import annotations

__all__ = ["env_flag", "is_on"]

import os

_TRUTHY_VALUES = frozenset({"1", "true", "yes", "y", "on"})


def is_on(value: str | None) -> bool:
    """Interpret a string switch ("1", "true", "yes", "y", "on") case-insensitively."""
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY_VALUES


def env_flag(name: str) -> bool:
    """Check whether the environment variable `name` is switched on."""
    return is_on(os.environ.get(name))
