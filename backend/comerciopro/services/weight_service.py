# Overview: Converts a weighed sale into a fraction of one stocked unit.

"""
Fractional sales

A product whose stock counts whole weighed items (e.g. 1 sack of 500 g) can
be sold by weight. The outbound movement quantity is the sold weight as a
fraction of the product's reference weight:

    equivalent_quantity = sale_weight_g / product_weight_g

rounded half-up to 4 decimal places. Rounding is not reconciled afterwards,
so many small sales can drift from the physical stock by up to 0.00005 per
sale.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..quantities import QUANTITY_STEP
from ..validation import ValidationError

GRAMS_PER_UNIT = {
    "mg": Decimal("0.001"),
    "g": Decimal("1"),
    "kg": Decimal("1000"),
}


def to_grams(weight, unit: str | None) -> Decimal:
    """Convert a weight expressed in `unit` to grams."""
    if unit is None:
        raise ValidationError("weight unit is required")
    factor = GRAMS_PER_UNIT.get(unit.strip().lower())
    if factor is None:
        raise ValidationError(
            f"unit {unit!r} is not a weight unit (expected one of: {', '.join(GRAMS_PER_UNIT)})"
        )
    try:
        value = Decimal(str(weight))
    except (InvalidOperation, TypeError):
        raise ValidationError("weight must be a number")
    if not value.is_finite():
        raise ValidationError("weight must be a finite number")
    return value * factor


def derive_fractional_quantity(sale_weight, sale_unit: str, product_weight, product_unit: str) -> Decimal:
    """
    Quantity of stocked units equivalent to `sale_weight`.

    >>> derive_fractional_quantity(5, "g", 500, "g")
    Decimal('0.0100')
    """
    sale_g = to_grams(sale_weight, sale_unit)
    product_g = to_grams(product_weight, product_unit)

    if sale_g <= 0:
        raise ValidationError("sale weight must be > 0")
    if product_g <= 0:
        raise ValidationError("product has no reference weight to sell by weight")

    quantity = (sale_g / product_g).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
    if quantity <= 0:
        raise ValidationError("sale weight is too small for this product")
    return quantity
