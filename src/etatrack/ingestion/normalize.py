"""Normalization helpers.

Centralizes defensive numeric parsing shared by the response parsers,
the blender, and the smoothing store.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def safe_float(value: Any) -> float | None:
    """Parse *value* as a finite float, or ``None``.

    Booleans are rejected so that ``True`` never masquerades as ``1``.
    """
    if value is None or value == "" or value == "--" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def non_negative(value: Any) -> float | None:
    """Finite, non-negative float or ``None``."""
    parsed = safe_float(value)
    if parsed is None or parsed < 0:
        return None
    return parsed


def is_number(value: Any) -> bool:
    """Return True for real numeric JSON values (not bools, not numeric strings)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from negative infinity.

    Python's :func:`round` uses banker's rounding; ETA arithmetic wants
    ``87.5 -> 88`` and ``0.5 -> 1`` consistently.
    """
    return math.floor(value + 0.5)


def first_number(data: Mapping[str, Any], *keys: str) -> float | None:
    """Return the first key in *keys* holding a finite non-negative number."""
    for key in keys:
        parsed = non_negative(data.get(key))
        if parsed is not None:
            return parsed
    return None


_KNOWN_TOP_LEVEL_KEYS = ("matrix", "summaries", "etas", "routes", "summary")


def unwrap_data(payload: Any) -> Any:
    """Strip a ``{"data": ...}`` response envelope if present.

    The envelope is only unwrapped when the outer object carries none of
    the keys the parsers understand.
    """
    if not isinstance(payload, Mapping):
        return payload
    if any(key in payload for key in _KNOWN_TOP_LEVEL_KEYS):
        return payload
    inner = payload.get("data")
    if isinstance(inner, (Mapping, list)):
        return inner
    return payload
