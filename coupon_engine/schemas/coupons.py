# coupon_engine/schemas/coupons.py
from typing import List, Optional, Annotated
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator, model_validator
from coupon_engine.schemas.object_id import PyObjectId
from coupon_engine.engine.models import CouponKind, DiscountDecision, RejectionReason
from coupon_engine.engine.totals import OrderTotals

# -----------------------------
# Reusable Constrained Types
# -----------------------------

NonNegInt = Annotated[int, Field(ge=0, description="Must be non-negative; 0 means no limit.")]
PositiveAmount = Annotated[float, Field(gt=0, description="Discount magnitude; must be positive.")]
Money = Annotated[float, Field(ge=0, description="Amount must be non-negative.")]
CodeStr = Annotated[str, Field(min_length=3, max_length=20, pattern=r"^[A-Z0-9_-]+$")]
Quantity = Annotated[int, Field(ge=1, le=10_000)]


def _normalize_code(v):
    if isinstance(v, str):
        v = v.strip().upper()
        if not v:
            raise ValueError("code must not be empty.")
    return v


def _as_utc(v):
    # naive datetimes are taken as UTC
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


def _check_percentage(kind, value):
    if kind == CouponKind.percentage and value is not None and value > 100:
        raise ValueError("Percentage value must be greater than 0 and at most 100")


# -----------------------------
# Main Models
# -----------------------------

class CouponsBase(BaseModel):
    code: CodeStr
    kind: CouponKind
    value: PositiveAmount
    applicable_product_ids: List[PyObjectId] = Field(default_factory=list)
    applicable_category_ids: List[PyObjectId] = Field(default_factory=list)
    applicable_brand_ids: List[PyObjectId] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    expiry_date: datetime
    usage_limit: Optional[NonNegInt] = None
    per_user_limit: Optional[NonNegInt] = None
    active: bool = True

    @field_validator("code", mode="before")
    @classmethod
    def _upper_code(cls, v):
        return _normalize_code(v)

    @field_validator("usage_limit", "per_user_limit")
    @classmethod
    def _zero_is_unlimited(cls, v):
        return v or None

    @field_validator("start_date", "expiry_date")
    @classmethod
    def _utc_dates(cls, v):
        return _as_utc(v)

    @model_validator(mode="after")
    def _check_bounds(self):
        _check_percentage(self.kind, self.value)
        if self.start_date is not None and self.expiry_date <= self.start_date:
            raise ValueError("expiry_date must be after start_date")
        return self

    model_config = {"extra": "ignore"}


class CouponsCreate(CouponsBase):
    pass


class CouponsUpdate(BaseModel):
    """
    Partial update. `None` means "leave unchanged"; a limit of 0 clears it.
    `used_count` is not editable: only redemptions move it.
    """
    code: Optional[CodeStr] = None
    kind: Optional[CouponKind] = None
    value: Optional[PositiveAmount] = None
    applicable_product_ids: Optional[List[PyObjectId]] = None
    applicable_category_ids: Optional[List[PyObjectId]] = None
    applicable_brand_ids: Optional[List[PyObjectId]] = None
    start_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    usage_limit: Optional[NonNegInt] = None
    per_user_limit: Optional[NonNegInt] = None
    active: Optional[bool] = None

    @field_validator("code", mode="before")
    @classmethod
    def _upper_code(cls, v):
        return _normalize_code(v)

    @field_validator("start_date", "expiry_date")
    @classmethod
    def _utc_dates(cls, v):
        return _as_utc(v)

    @model_validator(mode="after")
    def _check_bounds(self):
        _check_percentage(self.kind, self.value)
        if self.start_date is not None and self.expiry_date is not None and self.expiry_date <= self.start_date:
            raise ValueError("expiry_date must be after start_date")
        return self

    model_config = {"extra": "ignore"}


class CouponsOut(BaseModel):
    id: PyObjectId = Field(alias="_id")
    code: str
    kind: CouponKind
    value: float
    applicable_product_ids: List[PyObjectId] = Field(default_factory=list)
    applicable_category_ids: List[PyObjectId] = Field(default_factory=list)
    applicable_brand_ids: List[PyObjectId] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    expiry_date: datetime
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    used_count: int = 0
    active: bool = True
    created_by: Optional[PyObjectId] = None
    createdAt: datetime
    updatedAt: datetime

    model_config = {
        "populate_by_name": True,
        "from_attributes": False,
        "extra": "ignore",
    }


class CouponUsageOut(BaseModel):
    code: str
    used_count: int
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    user_id: Optional[str] = None
    user_used: Optional[int] = None


# ----------------------------------------------
# Apply / checkout I/O
# ----------------------------------------------

class CheckoutLineIn(BaseModel):
    product_id: PyObjectId
    quantity: Quantity = 1


class CartLineIn(CheckoutLineIn):
    unit_price: Optional[Money] = None  # falls back to the product's price


class CouponApplyIn(BaseModel):
    code: str
    items: List[CartLineIn] = Field(default_factory=list)
    user_id: Optional[PyObjectId] = None  # ignored when the caller is authenticated

    @field_validator("code", mode="before")
    @classmethod
    def _trim_code(cls, v):
        return _normalize_code(v)


class CouponCartApplyIn(BaseModel):
    code: str

    @field_validator("code", mode="before")
    @classmethod
    def _trim_code(cls, v):
        return _normalize_code(v)


class CouponCheckOut(BaseModel):
    code: str
    eligible: bool
    kind: Optional[CouponKind] = None
    value: Optional[float] = None
    subtotal: float
    eligible_subtotal: float
    discount_amount: float
    final_total: float
    currency: str
    reason: Optional[RejectionReason] = None
    eligible_item_ids: List[str] = Field(default_factory=list)

    @classmethod
    def from_decision(cls, decision: DiscountDecision, currency: str) -> "CouponCheckOut":
        return cls(
            code=decision.code,
            eligible=decision.eligible,
            kind=decision.kind,
            value=float(decision.value) if decision.value is not None else None,
            subtotal=float(decision.subtotal),
            eligible_subtotal=float(decision.eligible_subtotal),
            discount_amount=float(decision.discount_amount),
            final_total=float(decision.final_total),
            currency=currency,
            reason=decision.reason,
            eligible_item_ids=list(decision.eligible_item_ids),
        )

    model_config = {"extra": "ignore"}


class CheckoutPreviewIn(BaseModel):
    """Checkout lines carry no price: totals are always priced from the catalog."""
    items: List[CheckoutLineIn] = Field(min_length=1)
    code: Optional[str] = None
    user_id: Optional[PyObjectId] = None

    @field_validator("code", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return _normalize_code(v)


class CheckoutPreviewOut(BaseModel):
    subtotal: float
    shipping: float
    tax: float
    original_total: float
    discount_amount: float
    final_total: float
    currency: str
    coupon: Optional[CouponCheckOut] = None

    @classmethod
    def from_totals(cls, totals: OrderTotals, coupon: Optional[CouponCheckOut] = None) -> "CheckoutPreviewOut":
        return cls(
            subtotal=float(totals.subtotal),
            shipping=float(totals.shipping),
            tax=float(totals.tax),
            original_total=float(totals.original_total),
            discount_amount=float(totals.discount_amount),
            final_total=float(totals.final_total),
            currency=totals.currency,
            coupon=coupon,
        )


# ----------------------------------------------
# Redemption confirmation
# ----------------------------------------------

class RedemptionIn(BaseModel):
    code: str
    order_id: PyObjectId
    user_id: Optional[PyObjectId] = None

    @field_validator("code", mode="before")
    @classmethod
    def _trim_code(cls, v):
        return _normalize_code(v)


class RedemptionOut(BaseModel):
    code: str
    order_id: str
    user_id: Optional[str] = None
    outcome: str
    used_count: Optional[int] = None
