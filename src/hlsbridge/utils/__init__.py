"""Utility helpers shared across the bridge service."""
from __future__ import annotations

from .coerce import coerce_float, coerce_int, to_bool, to_optional_str
from .strings import sanitize_component

__all__ = [
    "to_bool",
    "to_optional_str",
    "coerce_int",
    "coerce_float",
    "sanitize_component",
]
