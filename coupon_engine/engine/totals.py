"""Checkout totals: shipping, GST and the coupon discount on top of a cart."""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import BaseModel

from coupon_engine.core.config import settings
from coupon_engine.engine.models import ZERO, CartSnapshot, DiscountDecision, to_money


class OrderTotals(BaseModel):
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    original_total: Decimal
    discount_amount: Decimal = ZERO
    final_total: Decimal
    currency: str

    model_config = {"frozen": True}


def compute_order_totals(
    cart: CartSnapshot,
    decision: Optional[DiscountDecision] = None,
    free_shipping_threshold: Decimal = settings.FREE_SHIPPING_THRESHOLD,
    shipping_fee: Decimal = settings.SHIPPING_FEE,
    tax_rate: Decimal = settings.TAX_RATE,
    currency: str = settings.CURRENCY,
) -> OrderTotals:
    """
    Shipping is free strictly above the threshold. Tax is charged on the
    pre-discount subtotal and rounded to whole currency units. Only an
    eligible decision reduces the total.
    """
    subtotal = to_money(cart.subtotal)
    shipping = ZERO if subtotal > free_shipping_threshold else shipping_fee
    tax = (subtotal * tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    original_total = to_money(subtotal + shipping + tax)

    discount = decision.discount_amount if decision is not None and decision.eligible else ZERO

    return OrderTotals(
        subtotal=subtotal,
        shipping=to_money(shipping),
        tax=to_money(tax),
        original_total=original_total,
        discount_amount=discount,
        final_total=original_total - discount,
        currency=currency,
    )
