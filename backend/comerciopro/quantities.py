# Overview: Decimal helpers for stock quantities (4 decimal places, half-up) and their integer storage form.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

QUANTITY_SCALE = 4
QUANTITY_STEP = Decimal(1).scaleb(-QUANTITY_SCALE)  # Decimal("0.0001")


def to_quantity(value) -> Decimal:
    """
    Normalize a number to a Decimal quantity rounded half-up to 4 places.

    Floats go through str() so 0.1 stays 0.1 and not its binary expansion.
    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError("quantity must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        dec = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError):
        raise ValueError("quantity must be a number")
    if not dec.is_finite():
        raise ValueError("quantity must be a finite number")
    return dec.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def quantity_to_json(value: Decimal | None):
    """Whole quantities serialize as int, fractional ones as float."""
    if value is None:
        return None
    dec = to_quantity(value)
    if dec == dec.to_integral_value():
        return int(dec)
    return float(dec)


def to_units(value) -> int:
    """Quantity as an integer count of ten-thousandths (0.0001)."""
    return int(to_quantity(value).scaleb(QUANTITY_SCALE))


def from_units(units: int) -> Decimal:
    return Decimal(int(units)).scaleb(-QUANTITY_SCALE).quantize(QUANTITY_STEP)
