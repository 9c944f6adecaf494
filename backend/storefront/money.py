from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, ROUND_FLOOR

TWO_PLACES = Decimal("0.01")


def to_decimal(value, default: str | None = None) -> Decimal:
    """
    Coerce numbers and numeric strings to Decimal via str() so that floats
    keep their shortest repr (0.1 -> Decimal("0.1"), not the binary expansion).
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a monetary value")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        if default is None:
            raise ValueError(f"invalid numeric value: {value!r}")
        return Decimal(default)


def round_money(value) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def floor_int(value) -> int:
    return int(to_decimal(value).to_integral_value(rounding=ROUND_FLOOR))


def as_float(value) -> float | None:
    """JSON-friendly money."""
    if value is None:
        return None
    return float(round_money(value))
