"""Half-up rounding for money and counts."""

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero (float round() rounds halves to even)."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_money(value: float) -> float:
    """Round to cents."""
    return round_half_up(value, 2)
