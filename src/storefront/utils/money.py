"""Money conversions between dollar floats and integer cents.

Prices are stored in dollars on cards and orders. The payment provider works
in cents, and refund comparisons are done in cents to avoid float drift.
"""

from decimal import ROUND_HALF_UP, Decimal


def to_cents(amount: float | int | str | None) -> int:
    """Convert a dollar amount to integer cents, rounding half up."""
    if amount is None:
        return 0
    value = Decimal(str(amount)) * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> float:
    """Convert integer cents to a dollar amount."""
    if not cents:
        return 0.0
    return float(Decimal(int(cents)) / 100)
