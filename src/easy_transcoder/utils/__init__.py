"""Utility helpers shared across the transcoder service."""
from __future__ import annotations

from .coerce import (
    coerce_float,
    coerce_int,
    to_bool,
    to_optional_bool,
    to_optional_str,
    to_string_sequence,
)

__all__ = [
    "coerce_float",
    "coerce_int",
    "to_bool",
    "to_optional_bool",
    "to_optional_str",
    "to_string_sequence",
]
