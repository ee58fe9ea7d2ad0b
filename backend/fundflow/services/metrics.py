"""Rate helpers shared by the analytics read paths."""

from __future__ import annotations

from decimal import Decimal
from typing import Union

Number = Union[int, float, Decimal]


def percentage(numerator: Number, denominator: Number, digits: int = 2) -> float:
    """numerator / denominator * 100, rounded; 0.0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return round(float(numerator) / float(denominator) * 100, digits)


def format_percentage(numerator: Number, denominator: Number) -> str:
    """Rate as a display string with one decimal, e.g. "42.5%"."""
    if not denominator:
        return "0.0%"
    return f"{float(numerator) / float(denominator) * 100:.1f}%"


def to_float(value) -> float:
    """Coerce SQL numerics (Decimal, None) to float."""
    if value is None:
        return 0.0
    return float(value)
