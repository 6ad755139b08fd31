"""
Numeric helpers shared by the scoring code.

Python's round() uses banker's rounding; percentages shown to operators
use the conventional half-up rule instead.
"""

from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero for positives (0.125 -> 0.13, 12.5 -> 13)."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percent(value: float) -> int:
    """0.875 -> 88"""
    return int(round_half_up(value * 100))
