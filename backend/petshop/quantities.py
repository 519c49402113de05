"""
Quantity and money helpers.

Quantities are Decimals with three fractional digits (goods sold by weight);
money is always integer cents. Line amounts are rounded half-up to the cent.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

QUANTITY_STEP = Decimal("0.001")
ZERO = Decimal("0")

# Largest quantity a Numeric(12, 3) column holds
MAX_QUANTITY = Decimal("999999999.999")


def to_quantity(value, field: str = "quantity") -> Decimal:
    """
    Coerce JSON input (int, float, numeric string or Decimal) to a quantity.

    Booleans and blanks are rejected. Floats go through str() so 0.1 stays 0.1.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field} must be a number")
    try:
        qty = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not qty.is_finite():
        raise ValidationError(f"{field} must be a number")
    qty = qty.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
    if abs(qty) > MAX_QUANTITY:
        raise ValidationError(f"{field} is too large")
    return qty


def to_positive_quantity(value, field: str = "quantity") -> Decimal:
    qty = to_quantity(value, field)
    if qty <= ZERO:
        raise ValidationError(f"{field} must be greater than zero")
    return qty


def to_cents(value, field: str, *, allow_zero: bool = True) -> int:
    """Strict integer cents; floats and numeric strings with decimals are rejected."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer number of cents")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer number of cents")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>=' if allow_zero else '>'} 0")
    return value


def line_amount_cents(quantity: Decimal, unit_cents: int) -> int:
    return int((Decimal(quantity) * unit_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quantity_to_json(value) -> float | None:
    if value is None:
        return None
    return float(value)


def normalize_quantity(value) -> Decimal:
    """Round a stored or aggregated quantity (Decimal, float or None) to the quantity step."""
    if value is None:
        return ZERO.quantize(QUANTITY_STEP)
    return Decimal(str(value)).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
