"""Coercion helpers for values arriving from env vars, YAML and JSON bodies."""
from __future__ import annotations

from typing import Any, Optional, Tuple

_TRUTHY = {"true", "1", "yes", "on"}
_FALSY = {"false", "0", "no", "off"}


def to_bool(value: Any, *, allow_blank_false: bool = True) -> bool:
    """Best-effort conversion of common truthy/falsey inputs to ``bool``."""

    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY or (allow_blank_false and not lowered):
            return False
    return False


def to_optional_bool(value: Any) -> Optional[bool]:
    """Variant of :func:`to_bool` that returns ``None`` when indeterminate."""

    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
    return None


def to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_string_sequence(value: Any) -> Tuple[str, ...]:
    """Accept a list or a comma separated string."""

    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    if isinstance(value, (list, tuple, set)):
        return tuple(str(item) for item in value)
    return (str(value),)


def coerce_int(value: Any, fallback: int) -> int:
    if value is None:
        return fallback
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def coerce_float(value: Any, fallback: float) -> float:
    if value is None:
        return fallback
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


__all__ = [
    "coerce_float",
    "coerce_int",
    "to_bool",
    "to_optional_bool",
    "to_optional_str",
    "to_string_sequence",
]
