"""
Pure coupon evaluation.

`evaluate` runs the validity rules in a fixed order, stops at the first
failure and reports it as the decision's reason. On success it computes the
discount over the lines the coupon applies to. No I/O happens here: the
caller looks the coupon up, fetches usage counts and resolves the cart
before calling in.
"""

from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from coupon_engine.engine.applicability import eligible_lines, eligible_subtotal
from coupon_engine.engine.models import (
    CartSnapshot,
    Coupon,
    CouponKind,
    DiscountDecision,
    RejectionReason,
    UsageContext,
    normalize_code,
    to_money,
)


def _as_utc(dt: datetime) -> datetime:
    # naive datetimes are stored as UTC
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def check_validity(
    coupon: Optional[Coupon],
    code: str,
    user_id: Optional[str],
    usage: UsageContext,
    now: datetime,
) -> Optional[RejectionReason]:
    """Rules 1-6 (everything that does not depend on cart contents)."""
    if coupon is None or coupon.code != code:
        return RejectionReason.not_found
    if not coupon.active:
        return RejectionReason.inactive
    if coupon.start_date is not None and now < _as_utc(coupon.start_date):
        return RejectionReason.not_started
    if now > _as_utc(coupon.expiry_date):
        return RejectionReason.expired
    if coupon.usage_limit is not None and usage.global_used >= coupon.usage_limit:
        return RejectionReason.global_limit_exceeded
    if coupon.per_user_limit is not None:
        if not user_id:
            return RejectionReason.user_identity_required
        if usage.user_used >= coupon.per_user_limit:
            return RejectionReason.per_user_limit_exceeded
    return None


def compute_discount(coupon: Coupon, amount: Decimal) -> Decimal:
    if coupon.kind == CouponKind.percentage:
        return to_money(amount * coupon.value / 100)
    # flat never exceeds what it applies to
    return to_money(min(coupon.value, amount))


def evaluate(
    code: str,
    coupon: Optional[Coupon],
    cart: CartSnapshot,
    user_id: Optional[str] = None,
    usage: Optional[UsageContext] = None,
    now: Optional[datetime] = None,
) -> DiscountDecision:
    """
    Decide whether `coupon` (the repository's answer for `code`) applies to
    `cart` and how much it takes off.

    Args:
        code: Code the shopper entered; case-insensitive.
        coupon: Coupon found for the code, or None.
        cart: Materialized cart snapshot.
        user_id: Shopper identity; needed when the coupon has a per-user limit.
        usage: Global and per-user redemption counts; zero when omitted.
        now: Evaluation instant; defaults to the current UTC time.

    Returns:
        DiscountDecision. Rejections are returned, never raised.

    Raises:
        ValueError: blank code.
    """
    if not isinstance(code, str) or not code.strip():
        raise ValueError("code must be a non-empty string")

    code = normalize_code(code)
    usage = usage or UsageContext()
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    subtotal = to_money(cart.subtotal)

    def reject(reason: RejectionReason) -> DiscountDecision:
        return DiscountDecision(
            code=code,
            eligible=False,
            kind=coupon.kind if coupon is not None else None,
            value=coupon.value if coupon is not None else None,
            subtotal=subtotal,
            final_total=subtotal,
            reason=reason,
        )

    if cart.is_empty:
        return reject(RejectionReason.empty_cart)

    reason = check_validity(coupon, code, user_id, usage, now)
    if reason is not None:
        return reject(reason)

    lines = eligible_lines(cart.lines, coupon)
    if not lines:
        return reject(RejectionReason.no_eligible_items)

    applicable = eligible_subtotal(lines, coupon)
    discount = compute_discount(coupon, applicable)

    item_ids = []
    for line in lines:
        if line.product_id not in item_ids:
            item_ids.append(line.product_id)

    return DiscountDecision(
        code=code,
        eligible=True,
        kind=coupon.kind,
        value=coupon.value,
        subtotal=subtotal,
        eligible_subtotal=to_money(applicable),
        discount_amount=discount,
        final_total=subtotal - discount,
        eligible_item_ids=item_ids,
    )
