"""
pricing/delivery_fee.py

Tiered delivery-fee policy shared by the cart, checkout and the API client.

The fee is a percentage of the cart subtotal, chosen by band:

    subtotal == 0             -> no fee
    subtotal <= 200           -> 40%
    200 < subtotal <= 400     -> 20%
    400 < subtotal <= 499     -> 10%
    subtotal > 499            -> free delivery

All arithmetic is done with Decimal and every value is rounded to the paisa
(ROUND_HALF_UP) before it leaves this module. Note that the total is not
monotonic: a 499 cart costs 548.90 while a 500 cart costs 500.00.
"""

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from numbers import Number
from typing import Iterable, Mapping, Union

from pydantic import BaseModel

Amount = Union[int, float, str, Decimal]

PAISA = Decimal("0.01")

# (inclusive upper bound, fee rate); anything above the last bound ships free
DELIVERY_FEE_BANDS = [
    (Decimal("200"), Decimal("0.40")),
    (Decimal("400"), Decimal("0.20")),
    (Decimal("499"), Decimal("0.10")),
]
FREE_DELIVERY_RATE = Decimal("0")
# Shown to customers as "orders of ₹500 or more ship free"
FREE_DELIVERY_THRESHOLD = Decimal("500")


class InvalidSubtotalError(ValueError):
    """Raised for negative, non-finite or non-numeric amounts."""


class PriceBreakdown(BaseModel):
    subtotal: float
    delivery_fee: float
    total_amount: float


def round_money(value: Decimal) -> Decimal:
    return value.quantize(PAISA, rounding=ROUND_HALF_UP)


def to_decimal(value: Amount, field: str = "subtotal") -> Decimal:
    """Convert a user-supplied amount to Decimal, rejecting anything that is not a finite, non-negative number."""
    if isinstance(value, bool) or value is None:
        raise InvalidSubtotalError(f"{field} must be a number")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, Number):
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidSubtotalError(f"{field} must be a finite number")
        # str() keeps the float's shortest repr, so 0.1 stays 0.1
        amount = Decimal(str(value))
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidSubtotalError(f"{field} must be a number") from None
    else:
        raise InvalidSubtotalError(f"{field} must be a number")

    if not amount.is_finite():
        raise InvalidSubtotalError(f"{field} must be a finite number")
    if amount < 0:
        raise InvalidSubtotalError(f"{field} cannot be negative")
    return amount


def delivery_fee_rate(subtotal: Amount) -> Decimal:
    amount = to_decimal(subtotal)
    if amount == 0:
        return FREE_DELIVERY_RATE
    for upper_bound, rate in DELIVERY_FEE_BANDS:
        if amount <= upper_bound:
            return rate
    return FREE_DELIVERY_RATE


def _fee_decimal(amount: Decimal) -> Decimal:
    return round_money(amount * delivery_fee_rate(amount))


def calculate_delivery_fee(subtotal: Amount) -> float:
    """Delivery fee for a subtotal, rounded to 2 decimal places."""
    return float(_fee_decimal(round_money(to_decimal(subtotal))))


def calculate_total(subtotal: Amount) -> PriceBreakdown:
    """Subtotal, delivery fee and grand total for a cart subtotal."""
    amount = round_money(to_decimal(subtotal))
    fee = _fee_decimal(amount)
    return PriceBreakdown(
        subtotal=float(amount),
        delivery_fee=float(fee),
        total_amount=float(round_money(amount + fee)),
    )


def calculate_subtotal(items: Iterable[Mapping]) -> float:
    """Sum of price * quantity over cart or order line items."""
    total = Decimal("0")
    for item in items:
        price = to_decimal(item.get("price"), field="price")
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidSubtotalError("quantity must be a positive integer")
        total += price * quantity
    return float(round_money(total))


def free_delivery_gap(subtotal: Amount) -> float:
    """
    How much more to add for free delivery, counted up to the advertised
    FREE_DELIVERY_THRESHOLD (0 once the subtotal is already past the last band).
    """
    amount = to_decimal(subtotal)
    if amount > DELIVERY_FEE_BANDS[-1][0]:
        return 0.0
    return float(round_money(FREE_DELIVERY_THRESHOLD - amount))
