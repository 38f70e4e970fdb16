"""
Order amount calculation.

compute_amounts() is the only place where subtotal / discount / total are
derived. The order service calls it before every persist; nothing else
writes those columns.

Rounding: ROUND_HALF_UP to 2 decimals at EACH derived field, so the figures
a client sees always add up (total == subtotal - discount_amount).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import NamedTuple

from .errors import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class Amounts(NamedTuple):
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def _money(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, field: str) -> Decimal:
    """Convert int/float/str/Decimal to Decimal or raise ValidationError."""
    if value is None or isinstance(value, bool):
        raise ValidationError(field, f"{field} is required")
    if isinstance(value, Decimal):
        result = value
    else:
        raw = str(value).strip().replace(",", ".")
        if raw == "":
            raise ValidationError(field, f"{field} is required")
        try:
            result = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise ValidationError(field, f"{field} must be a number") from None
    if not result.is_finite():
        raise ValidationError(field, f"{field} must be a number")
    return result


def compute_amounts(quantity, unit_price, discount_percent=0) -> Amounts:
    """
    Compute (subtotal, discount_amount, total_amount).

    - quantity >= 0, unit_price >= 0
    - discount_percent in [0, 100]; anything else is rejected, never clamped
    """
    qty = to_decimal(quantity, "quantity")
    price = to_decimal(unit_price, "unit_price")
    discount = to_decimal(0 if discount_percent is None else discount_percent, "discount")

    if qty < 0:
        raise ValidationError("quantity", "quantity cannot be negative")
    if price < 0:
        raise ValidationError("unit_price", "unit_price cannot be negative")
    if discount < 0 or discount > HUNDRED:
        raise ValidationError("discount", "discount must be between 0 and 100")

    subtotal = _money(qty * price)
    discount_amount = _money(subtotal * discount / HUNDRED)
    total_amount = _money(subtotal - discount_amount)
    return Amounts(subtotal, discount_amount, total_amount)
