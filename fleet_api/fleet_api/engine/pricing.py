"""Line-item pricing and money rounding.

Money is stored as floats but every calculation goes through
:class:`~decimal.Decimal` built from the float's shortest ``repr`` so that
``10.005`` is treated as the exact decimal it was written as.  Rounding is
half-up to two places.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from fleet_api.errors import RecordValidationError

_CENT = Decimal("0.01")


def to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize2(value: float | int | Decimal) -> Decimal:
    """Round half-up to two decimal places, keeping Decimal precision."""
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def round2(value: float | int | Decimal) -> float:
    """Round half-up to two decimal places and return a float."""
    return float(quantize2(value))


@dataclass(frozen=True)
class PricedLineItem:
    """Stored price fields of a line item."""

    unit_price: float
    quantity: float
    total_price: float


def _require_number(name: str, value: Any) -> float:
    if value is None:
        raise RecordValidationError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise RecordValidationError(f"{name} must be a number")
    if not math.isfinite(float(value)):
        raise RecordValidationError(f"{name} must be a finite number")
    return value


def price_line_item(unit_price: Any, quantity: Any) -> PricedLineItem:
    """Validate and price a line item.

    Parameters
    ----------
    unit_price:
        Price per unit; must be ``>= 0``.
    quantity:
        Number of units; must be ``> 0``.

    Returns
    -------
    PricedLineItem
        ``unit_price`` and ``quantity`` rounded half-up to cents, and
        ``total_price`` rounded half-up from the exact product of the inputs
        (so ``10.005 x 3`` prices at ``30.02``).

    Raises
    ------
    RecordValidationError
        If either value is missing, not numeric, a negative price or a
        non-positive quantity.
    """
    unit_price = _require_number("unitPrice", unit_price)
    quantity = _require_number("quantity", quantity)
    if unit_price < 0:
        raise RecordValidationError("unitPrice is required and must be >= 0")
    if quantity <= 0:
        raise RecordValidationError("quantity is required and must be > 0")

    exact_total = to_decimal(unit_price) * to_decimal(quantity)
    return PricedLineItem(
        unit_price=round2(unit_price),
        quantity=round2(quantity),
        total_price=round2(exact_total),
    )


def floor_int(value: Any) -> int | None:
    """Floor a numeric value to an int; ``None`` passes through."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise RecordValidationError("expected a number")
    if not math.isfinite(float(value)):
        raise RecordValidationError("expected a finite number")
    return math.floor(value)


def normalise_warranty_mileage(value: Any) -> int | None:
    """Floor the warranty mileage; a missing or zero value is stored as absent."""
    floored = floor_int(value)
    return floored or None
