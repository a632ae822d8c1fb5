"""Lenient JSON parsing for model replies and tool payloads."""

from __future__ import annotations

import json
from typing import TypeVar

T = TypeVar("T")


def safe_json_loads(raw: str | bytes, default: T) -> dict | list | T:
    """Parse *raw* as JSON; malformed or non-text input gives *default*."""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default
