"""
Pathway Admin - Metric helpers shared by dashboard and analytics.
"""
import math
from typing import Union

Number = Union[int, float]


def round_half_up(value: Number) -> int:
    """Half-up rounding (2.5 -> 3), unlike Python's banker's round()."""
    return int(math.floor(value + 0.5))


def calculate_delta(current: Number, previous: Number) -> float:
    """Percentage change vs the previous period. 100 when growing from zero."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def round_delta(value: Number) -> float:
    """One decimal place."""
    return round_half_up(float(value) * 10) / 10


def format_number(value: Number) -> str:
    """1420 -> '1,420'"""
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.3f}".rstrip("0").rstrip(".")
    return f"{int(value):,}"


def percentage(part: Number, total: Number) -> int:
    """Whole-number share of `total`; 0 for an empty total."""
    if not total:
        return 0
    return round_half_up(part / total * 100)
