"""Money arithmetic shared by carts and checkout."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from nearmart.config import settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() keeps float inputs like 2.99 from turning into 2.9899999...
    return Decimal(str(value))


def round2(value) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    delivery_fee: Decimal
    total: Decimal


def line_subtotal(lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
    """Sum of unit_price * quantity over (unit_price, quantity) pairs."""
    return round2(sum((to_decimal(price) * qty for price, qty in lines), ZERO))


def clamp_discount(discount, subtotal: Decimal) -> Decimal:
    """Bound a discount to the range [0, subtotal]."""
    return min(max(round2(discount), ZERO), round2(subtotal))


def compute_totals(
    subtotal: Decimal,
    discount: Decimal = ZERO,
    tax_rate: Optional[Decimal] = None,
    delivery_fee: Optional[Decimal] = None,
) -> PriceBreakdown:
    """
    Price a basket.

    tax = round2((subtotal - discount) * tax_rate)
    total = subtotal - discount + tax + delivery_fee

    The discount is clamped to [0, subtotal] so the taxable amount never
    goes negative.
    """
    tax_rate = settings.TAX_RATE if tax_rate is None else to_decimal(tax_rate)
    delivery_fee = settings.DELIVERY_FEE if delivery_fee is None else delivery_fee

    subtotal = round2(subtotal)
    discount = clamp_discount(discount, subtotal)
    delivery_fee = round2(delivery_fee)
    tax = round2((subtotal - discount) * tax_rate)
    total = round2(subtotal - discount + tax + delivery_fee)

    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        delivery_fee=delivery_fee,
        total=total,
    )
