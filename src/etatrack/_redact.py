"""Scrubbing of request bodies and URLs before they reach DEBUG logs.

Provider calls carry API keys, and every batch body carries the live
positions of all participants. Credentials are masked outright;
coordinates are coarsened to roughly 100 m so logs stay useful for
debugging without pinpointing anyone.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_MASK = "<redacted>"
_MAX_DEPTH = 20

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "key",
        "apikey",
        "api_key",
        "password",
        "token",
        "accesstoken",
        "authorization",
        "cookie",
        "privatekey",
        "private_key",
    }
)
_COORDINATE_KEYS: frozenset[str] = frozenset({"lat", "lng", "latitude", "longitude"})


def _is_secret(key: str) -> bool:
    return key.lower() in _SECRET_KEYS


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…<truncated>"


def redact_for_log(
    value: Any,
    *,
    max_string: int = 512,
    coordinate_digits: int | None = 3,
    _depth: int = 0,
) -> Any:
    """Return a copy of *value* safe to emit in DEBUG logs.

    Parameters
    ----------
    value
        Decoded JSON-like structure (mappings, sequences, scalars).
    max_string : int
        Strings longer than this are cut and marked ``<truncated>``.
    coordinate_digits : int or None
        Decimal places kept for ``lat``/``lng`` values; ``None`` keeps
        full precision.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    def recurse(child: Any) -> Any:
        return redact_for_log(child, max_string=max_string, coordinate_digits=coordinate_digits, _depth=_depth + 1)

    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _clip(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        scrubbed: dict[str, Any] = {}
        for raw_key, child in value.items():
            key = str(raw_key)
            if _is_secret(key):
                scrubbed[key] = _MASK
            elif coordinate_digits is not None and key.lower() in _COORDINATE_KEYS and isinstance(child, float):
                scrubbed[key] = round(child, coordinate_digits)
            else:
                scrubbed[key] = recurse(child)
        return scrubbed
    if isinstance(value, Sequence):
        return [recurse(child) for child in value]
    return repr(value)


def redact_url(url: str) -> str:
    """Mask credential query parameters (``key=``, ``token=`` ...) in *url*."""
    base, sep, query = url.partition("?")
    if not sep:
        return url
    pairs = []
    for pair in query.split("&"):
        name, eq, _ = pair.partition("=")
        pairs.append(f"{name}={_MASK}" if eq and _is_secret(name) else pair)
    return f"{base}?{'&'.join(pairs)}"
