"""
Utility functions for safe arithmetic and value access.

Probe records arrive either as pydantic models or as plain mappings, and
timing values may be missing, so the metrics code goes through these helpers
instead of touching attributes or dividing directly.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

__all__ = ["round_half_up", "safe_divide", "safe_getattr"]


def safe_getattr(obj: Any | None, attr: str, default: Any = None) -> Any:
    """
    Get a field from an object or a mapping with None handling.

    :param obj: Object or mapping to read the field from, or None
    :param attr: Name of the attribute or key to retrieve
    :param default: Value to return if the object is None or lacks the field
    :return: Field value or default if not found
    """
    if obj is None:
        return default

    if isinstance(obj, Mapping):
        return obj.get(attr, default)

    return getattr(obj, attr, default)


def safe_divide(
    numerator: int | float | None,
    denominator: int | float | None,
    default: float = 0.0,
) -> float:
    """
    Divide two numbers, returning a default for missing or zero denominators.

    :param numerator: Number to divide, None is treated as 0
    :param denominator: Number to divide by
    :param default: Value returned when the denominator is None or zero
    :return: Division result or default
    """
    if not denominator:
        return default

    return (numerator or 0) / denominator


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves rounded towards +infinity.

    :param value: Value to round
    :return: Rounded integer
    """
    return math.floor(value + 0.5)
