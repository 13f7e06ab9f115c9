"""
Routes for Coupons: admin management, public apply/checkout previews and
redemption confirmation. All logic lives in the service layer.
Mounted at /coupons
"""

from __future__ import annotations
from typing import List, Optional, Dict

from fastapi import APIRouter, Depends, Query, status

from coupon_engine.api.deps import get_current_user, get_optional_user, require_admin
from coupon_engine.schemas.object_id import PyObjectId
from coupon_engine.schemas.coupons import (
    CouponsCreate, CouponsUpdate, CouponsOut, CouponUsageOut,
    CouponApplyIn, CouponCartApplyIn, CouponCheckOut,
    CheckoutPreviewIn, CheckoutPreviewOut,
    RedemptionIn, RedemptionOut,
)
from coupon_engine.services.coupons import (
    create_item_service,
    list_items_service,
    get_item_service,
    update_item_service,
    delete_item_service,
    get_usage_service,
    apply_coupon_service,
    apply_coupon_to_cart_service,
    checkout_preview_service,
    confirm_redemption_service,
)

router = APIRouter()  # mounted in main.py at /coupons

_INVALID_EXAMPLE = {
    "code": "WELCOME10",
    "eligible": False,
    "kind": "percentage",
    "value": 10,
    "subtotal": 499.0,
    "eligible_subtotal": 0.0,
    "discount_amount": 0.0,
    "final_total": 499.0,
    "currency": "INR",
    "reason": "Expired",
    "eligible_item_ids": [],
}


# --------- Public: preview ---------
# Static paths are declared before "/{item_id}" so they are not captured by it.

@router.post(
    "/apply",
    response_model=CouponCheckOut,  # applies to 200 OK only
    responses={
        400: {"description": "Coupon does not apply", "content": {"application/json": {"example": _INVALID_EXAMPLE}}},
        404: {"description": "Unknown coupon code"},
    },
)
async def apply_coupon(payload: CouponApplyIn, current_user: Optional[Dict] = Depends(get_optional_user)):
    """
    Preview a coupon against the given cart lines. Nothing is recorded.

    Args:
        payload: CouponApplyIn (code, items, optional user_id for guests).

    Returns:
        CouponCheckOut on 200 OK, or the same shape with 400/404.
    """
    return await apply_coupon_service(payload, current_user)


@router.post(
    "/apply-cart",
    response_model=CouponCheckOut,
    responses={400: {"description": "Coupon does not apply"}, 404: {"description": "Unknown coupon code"}},
)
async def apply_coupon_to_cart(payload: CouponCartApplyIn, current_user: Dict = Depends(get_current_user)):
    """Preview a coupon against the authenticated user's stored cart."""
    return await apply_coupon_to_cart_service(payload, current_user)


@router.post("/checkout-preview", response_model=CheckoutPreviewOut)
async def checkout_preview(payload: CheckoutPreviewIn, current_user: Optional[Dict] = Depends(get_optional_user)):
    """Subtotal, shipping, tax and discount for a prospective order."""
    return await checkout_preview_service(payload, current_user)


# --------- Redemption ---------

@router.post(
    "/redemptions",
    response_model=RedemptionOut,
    dependencies=[Depends(require_admin)],
)
async def confirm_redemption(payload: RedemptionIn):
    """
    Confirm a redemption once the order is placed. Repeating the call for the
    same order is harmless.

    Raises:
        HTTPException:
            - 404 unknown code.
            - 409 usage limit reached / order already used another coupon.
            - 503 ledger write failed; retry.
    """
    return await confirm_redemption_service(payload)


# --------- Admin CRUD ---------

@router.post(
    "/",
    response_model=CouponsOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_item(payload: CouponsCreate, current_user: Dict = Depends(require_admin)):
    """
    Create a new coupon.

    Raises:
        HTTPException:
            - 400 if expiry is not in the future.
            - 409 if duplicate coupon code.
            - 500 on server error.
    """
    return await create_item_service(payload, current_user)


@router.get(
    "/",
    response_model=List[CouponsOut],
    dependencies=[Depends(require_admin)],
)
async def list_items(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    active: Optional[bool] = Query(None, description="Filter by active flag"),
    expired: Optional[bool] = Query(None, description="true: past expiry, false: not yet expired"),
    search: Optional[str] = Query(None, max_length=20, description="Substring of the code"),
):
    """List coupons with optional filters."""
    return await list_items_service(skip=skip, limit=limit, active=active, expired=expired, search=search)


@router.get(
    "/{item_id}",
    response_model=CouponsOut,
    dependencies=[Depends(require_admin)],
)
async def get_item(item_id: PyObjectId):
    return await get_item_service(item_id)


@router.get(
    "/{item_id}/usage",
    response_model=CouponUsageOut,
    dependencies=[Depends(require_admin)],
)
async def get_usage(item_id: PyObjectId, user_id: Optional[PyObjectId] = Query(None)):
    """Global redemption count, and the given user's count when user_id is passed."""
    return await get_usage_service(item_id, user_id)


@router.put(
    "/{item_id}",
    response_model=CouponsOut,
    dependencies=[Depends(require_admin)],
)
async def update_item(item_id: PyObjectId, payload: CouponsUpdate):
    """
    Partially update a coupon. A limit of 0 removes it.

    Raises:
        HTTPException:
            - 400 if no fields provided or the result is invalid.
            - 404 if not found.
            - 409 if duplicate coupon code.
    """
    return await update_item_service(item_id=item_id, payload=payload)


@router.delete(
    "/{item_id}",
    dependencies=[Depends(require_admin)],
)
async def delete_item(item_id: PyObjectId):
    """
    Delete a coupon, or deactivate it when orders already redeemed it.

    Returns:
        JSONResponse: {"deleted": True} or {"deleted": False, "deactivated": True}.
    """
    return await delete_item_service(item_id)
