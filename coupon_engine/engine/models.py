"""
Value types for coupon evaluation.

Everything here is immutable: the evaluator receives fully materialized
coupons, cart snapshots and usage counts, and returns a decision without
touching persistence.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, field_validator

CENT = Decimal("0.01")
ZERO = Decimal("0")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def to_money(amount: Decimal) -> Decimal:
    """Round to minor-unit precision (2 dp), half-up."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class CouponKind(str, Enum):
    percentage = "percentage"
    flat = "flat"


class RejectionReason(str, Enum):
    not_found = "NotFound"
    inactive = "Inactive"
    not_started = "NotStarted"
    expired = "Expired"
    global_limit_exceeded = "GlobalLimitExceeded"
    per_user_limit_exceeded = "PerUserLimitExceeded"
    user_identity_required = "UserIdentityRequired"
    no_eligible_items = "NoEligibleItems"
    empty_cart = "EmptyCart"


class FilterPolicy(str, Enum):
    no_restriction = "no_restriction"
    product_list = "product_list"
    category_list = "category_list"
    brand_list = "brand_list"


def _id_set(v) -> FrozenSet[str]:
    return frozenset(str(x) for x in (v or []))


class Coupon(BaseModel):
    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    code: str
    kind: CouponKind
    value: Decimal
    applicable_product_ids: FrozenSet[str] = frozenset()
    applicable_category_ids: FrozenSet[str] = frozenset()
    applicable_brand_ids: FrozenSet[str] = frozenset()
    start_date: Optional[datetime] = None
    expiry_date: datetime
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    used_count: int = 0
    active: bool = True

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_oid(cls, v):
        return str(v) if v is not None else None

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, v):
        return normalize_code(v) if isinstance(v, str) else v

    @field_validator(
        "applicable_product_ids", "applicable_category_ids", "applicable_brand_ids", mode="before"
    )
    @classmethod
    def _stringify_ids(cls, v):
        return _id_set(v)

    @field_validator("usage_limit", "per_user_limit", mode="before")
    @classmethod
    def _zero_is_unlimited(cls, v):
        return v or None

    model_config = {"frozen": True, "extra": "ignore"}


class CartLine(BaseModel):
    product_id: str
    category_id: Optional[str] = None
    brand_id: Optional[str] = None  # legacy products may carry no brand
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)

    @field_validator("product_id", "category_id", "brand_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v) if v is not None else None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    model_config = {"frozen": True}


class CartSnapshot(BaseModel):
    lines: Tuple[CartLine, ...] = ()

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), ZERO)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    model_config = {"frozen": True}


class UsageContext(BaseModel):
    global_used: int = Field(default=0, ge=0)
    user_used: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class DiscountDecision(BaseModel):
    code: str
    eligible: bool
    kind: Optional[CouponKind] = None
    value: Optional[Decimal] = None
    subtotal: Decimal
    eligible_subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    final_total: Decimal
    reason: Optional[RejectionReason] = None
    eligible_item_ids: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}
