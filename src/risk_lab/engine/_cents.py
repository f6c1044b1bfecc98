"""Integer-cent rounding shared by the compiler and the trial loop."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_ONE = Decimal(1)


def to_decimal(value: float | int | Decimal) -> Decimal:
    """Exact decimal for a user-facing number (0.1 stays 0.1, not its binary twin)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(value))


def round_half_up(value: float | int | Decimal) -> int:
    """Round to whole cents, halves away from zero."""
    return int(to_decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, percent: float | Decimal) -> int:
    """``amount_cents * percent / 100`` rounded to whole cents."""
    return round_half_up(Decimal(amount_cents) * to_decimal(percent) / 100)
