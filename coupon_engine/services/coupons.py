"""
Service layer for Coupons.
Encapsulates business rules, data access orchestration, and error normalization.

The decision itself is made by the pure evaluator in coupon_engine.engine;
this module fetches what it needs (coupon, usage, cart) and maps the result
onto HTTP responses.
"""

from __future__ import annotations
import re
from typing import List, Optional, Dict, Any

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from coupon_engine.core.config import settings
from coupon_engine.core.logger import get_logger
from coupon_engine.crud import coupons as crud
from coupon_engine.crud import coupon_redemptions as ledger
from coupon_engine.crud.coupon_redemptions import RedemptionOutcome
from coupon_engine.engine.evaluator import evaluate
from coupon_engine.engine.models import CartSnapshot, DiscountDecision, RejectionReason, UsageContext
from coupon_engine.engine.totals import compute_order_totals
from coupon_engine.schemas.object_id import PyObjectId
from coupon_engine.schemas.coupons import (
    CouponsCreate, CouponsUpdate, CouponsOut, CouponUsageOut,
    CouponApplyIn, CouponCartApplyIn, CouponCheckOut,
    CheckoutPreviewIn, CheckoutPreviewOut,
    RedemptionIn, RedemptionOut,
)
from coupon_engine.services.cart_snapshot import resolve_cart_snapshot, resolve_user_cart_snapshot
from coupon_engine.utils.mongo import utcnow

log = get_logger("coupons")

# HTTP status for each refused redemption
_REDEMPTION_ERRORS = {
    RedemptionOutcome.not_found: (404, RejectionReason.not_found.value),
    RedemptionOutcome.limit_exceeded: (409, RejectionReason.global_limit_exceeded.value),
    RedemptionOutcome.per_user_limit_exceeded: (409, RejectionReason.per_user_limit_exceeded.value),
    RedemptionOutcome.user_identity_required: (400, RejectionReason.user_identity_required.value),
    RedemptionOutcome.order_conflict: (409, "Order already redeemed a different coupon"),
}


def _is_duplicate_key(e: Exception) -> bool:
    return "E11000" in str(e)


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------

async def create_item_service(payload: CouponsCreate, current_user: Dict[str, Any]) -> CouponsOut:
    """
    Create a coupon.

    Args:
        payload: Coupon creation schema.
        current_user: Admin creating the coupon.

    Returns:
        CouponsOut

    Raises:
        HTTPException:
            - 400 if the expiry date is not in the future.
            - 409 for duplicate coupon code.
            - 500 for other errors.
    """
    try:
        if payload.expiry_date <= utcnow():
            raise HTTPException(status_code=400, detail="Expiry date must be in the future")
        created = await crud.create(payload, created_by=current_user.get("user_id"))
        log.info("Coupon %s created by %s", created.code, current_user.get("user_id"))
        return created
    except HTTPException:
        raise
    except Exception as e:
        if _is_duplicate_key(e):
            raise HTTPException(status_code=409, detail="Coupon code already exists")
        raise HTTPException(status_code=500, detail=f"Failed to create coupon: {e}")


async def list_items_service(
    skip: int,
    limit: int,
    active: Optional[bool],
    expired: Optional[bool],
    search: Optional[str],
) -> List[CouponsOut]:
    """
    List coupons with optional filters.

    Args:
        skip: Pagination offset.
        limit: Page size.
        active: Filter on the kill-switch.
        expired: True for coupons past expiry, False for the rest.
        search: Case-insensitive substring of the code.

    Returns:
        List[CouponsOut]
    """
    try:
        q: Dict[str, Any] = {}
        if active is not None:
            q["active"] = active
        if expired is True:
            q["expiry_date"] = {"$lt": utcnow()}
        elif expired is False:
            q["expiry_date"] = {"$gte": utcnow()}
        if search and search.strip():
            q["code"] = {"$regex": re.escape(search.strip().upper()), "$options": "i"}
        return await crud.list_all(skip=skip, limit=limit, query=q or None)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list coupons: {e}")


async def get_item_service(item_id: PyObjectId) -> CouponsOut:
    """
    Get coupon by ID.

    Raises:
        HTTPException:
            - 404 if not found.
            - 500 on server error.
    """
    try:
        item = await crud.get_one(item_id)
        if not item:
            raise HTTPException(status_code=404, detail="Coupon not found")
        return item
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get coupon: {e}")


async def update_item_service(item_id: PyObjectId, payload: CouponsUpdate) -> CouponsOut:
    """
    Update a coupon. The resulting kind/value pair and validity window are
    checked against the stored document, not just the payload.

    Raises:
        HTTPException:
            - 400 if no fields provided or the result would be invalid.
            - 404 if not found.
            - 409 if duplicate coupon code.
            - 500 on server error.
    """
    try:
        if not any(v is not None for v in payload.model_dump().values()):
            raise HTTPException(status_code=400, detail="No fields provided for update")

        current = await crud.get_one(item_id)
        if not current:
            raise HTTPException(status_code=404, detail="Coupon not found")

        kind = payload.kind or current.kind
        value = payload.value if payload.value is not None else current.value
        if kind == "percentage" and value > 100:
            raise HTTPException(status_code=400, detail="Percentage value must be greater than 0 and at most 100")

        start = payload.start_date or current.start_date
        expiry = payload.expiry_date or current.expiry_date
        if start is not None and expiry <= start:
            raise HTTPException(status_code=400, detail="expiry_date must be after start_date")

        updated = await crud.update_one(item_id, payload)
        if not updated:
            raise HTTPException(status_code=404, detail="Coupon not found or not updated")
        return updated
    except HTTPException:
        raise
    except Exception as e:
        if _is_duplicate_key(e):
            raise HTTPException(status_code=409, detail="Coupon code already exists")
        raise HTTPException(status_code=500, detail=f"Failed to update coupon: {e}")


async def delete_item_service(item_id: PyObjectId):
    """
    Delete a coupon. Coupons referenced by redemptions are deactivated
    instead so historical orders keep their reference.

    Returns:
        JSONResponse: {"deleted": True} or {"deleted": False, "deactivated": True}.

    Raises:
        HTTPException:
            - 404 if not found.
            - 500 on server error.
    """
    try:
        ok = await crud.delete_one(item_id)
        if ok is None:
            raise HTTPException(status_code=404, detail="Coupon not found")
        if ok is False:
            return JSONResponse(status_code=200, content={"deleted": False, "deactivated": True})
        return JSONResponse(status_code=200, content={"deleted": True})
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete coupon: {e}")


async def get_usage_service(item_id: PyObjectId, user_id: Optional[PyObjectId]) -> CouponUsageOut:
    try:
        item = await crud.get_one(item_id)
        if not item:
            raise HTTPException(status_code=404, detail="Coupon not found")
        user_used = await ledger.count_for_user(item.id, user_id) if user_id is not None else None
        return CouponUsageOut(
            code=item.code,
            used_count=item.used_count,
            usage_limit=item.usage_limit,
            per_user_limit=item.per_user_limit,
            user_id=str(user_id) if user_id is not None else None,
            user_used=user_used,
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get coupon usage: {e}")


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _effective_user_id(current_user: Optional[Dict[str, Any]], fallback: Any = None) -> Optional[str]:
    if current_user and current_user.get("user_id"):
        return str(current_user["user_id"])
    return str(fallback) if fallback is not None else None


async def evaluate_for_cart(code: str, cart: CartSnapshot, user_id: Optional[str]) -> DiscountDecision:
    """
    Fetch the coupon and its usage once, then hand everything to the pure
    evaluator. Never writes.
    """
    coupon = None
    usage = UsageContext()
    if not cart.is_empty:
        coupon = await crud.get_by_code(code)
        if coupon is not None:
            user_used = await ledger.count_for_user(coupon.id, user_id) if user_id else 0
            usage = UsageContext(global_used=coupon.used_count, user_used=user_used)

    decision = evaluate(code, coupon, cart, user_id=user_id, usage=usage)
    if not decision.eligible:
        log.info("Coupon %s rejected: %s", decision.code, decision.reason.value)
    return decision


def _decision_response(decision: DiscountDecision):
    """
    200 with CouponCheckOut when eligible; otherwise the same shape with
    404 (unknown code) or 400 (any other reason).
    """
    out = CouponCheckOut.from_decision(decision, settings.CURRENCY)
    if decision.eligible:
        return out
    status_code = 404 if decision.reason == RejectionReason.not_found else 400
    return JSONResponse(status_code=status_code, content=out.model_dump(mode="json"))


async def apply_coupon_service(payload: CouponApplyIn, current_user: Optional[Dict[str, Any]]):
    """
    Preview a coupon against request lines. Safe to call repeatedly.

    Raises:
        HTTPException: 400 for unknown products, 500 on unexpected errors.
    """
    try:
        cart = await resolve_cart_snapshot(payload.items)
        decision = await evaluate_for_cart(
            payload.code, cart, _effective_user_id(current_user, payload.user_id)
        )
        return _decision_response(decision)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to apply coupon: {e}")


async def apply_coupon_to_cart_service(payload: CouponCartApplyIn, current_user: Dict[str, Any]):
    """Preview a coupon against the caller's stored cart."""
    try:
        cart = await resolve_user_cart_snapshot(current_user["cart_id"])
        decision = await evaluate_for_cart(payload.code, cart, _effective_user_id(current_user))
        return _decision_response(decision)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to apply coupon: {e}")


async def checkout_preview_service(
    payload: CheckoutPreviewIn, current_user: Optional[Dict[str, Any]]
) -> CheckoutPreviewOut:
    """
    Order totals (shipping, tax, discount) for a prospective order. A coupon
    that does not apply is reported in `coupon` and leaves the totals
    undiscounted.
    """
    try:
        cart = await resolve_cart_snapshot(payload.items, catalog_prices_only=True)
        decision = None
        coupon_out = None
        if payload.code:
            decision = await evaluate_for_cart(
                payload.code, cart, _effective_user_id(current_user, payload.user_id)
            )
            coupon_out = CouponCheckOut.from_decision(decision, settings.CURRENCY)
        totals = compute_order_totals(cart, decision)
        return CheckoutPreviewOut.from_totals(totals, coupon_out)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to preview checkout: {e}")


# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------

async def confirm_redemption_service(payload: RedemptionIn) -> RedemptionOut:
    """
    Record a coupon redemption for a placed order. Idempotent per order id:
    a repeated call answers with outcome "duplicate" and changes nothing.

    Raises:
        HTTPException:
            - 404 unknown code.
            - 409 global/per-user limit reached, or order already used another coupon.
            - 400 per-user limit set but no user id given.
            - 503 ledger write failed; safe to retry.
            - 500 on other errors.
    """
    try:
        outcome, used_count = await ledger.confirm_redemption(
            payload.code, payload.user_id, payload.order_id
        )
    except PyMongoError as e:
        log.warning("Redemption of %s for order %s failed: %s", payload.code, payload.order_id, e)
        raise HTTPException(
            status_code=503,
            detail="Redemption could not be recorded, retry",
            headers={"Retry-After": "1"},
        )
    except Exception as e:
        log.error("Unexpected redemption failure for %s: %s", payload.code, e)
        raise HTTPException(status_code=500, detail=f"Failed to confirm redemption: {e}")

    if outcome in _REDEMPTION_ERRORS:
        status_code, detail = _REDEMPTION_ERRORS[outcome]
        raise HTTPException(status_code=status_code, detail=detail)

    return RedemptionOut(
        code=payload.code,
        order_id=str(payload.order_id),
        user_id=str(payload.user_id) if payload.user_id is not None else None,
        outcome=outcome.value,
        used_count=used_count,
    )
