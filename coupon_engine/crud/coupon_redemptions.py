# coupon_engine/crud/coupon_redemptions.py
"""
Usage ledger: one document per redeemed order, plus the coupon's running
`used_count`.

`confirm_redemption` is the only writer of `used_count`. It is idempotent per
order (unique index on `order_id`) and never lets `used_count` pass
`usage_limit`: the increment is a conditional update inside the same
transaction as the ledger insert.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from coupon_engine.core.database import db, COUPONS_COLL, REDEMPTIONS_COLL
from coupon_engine.core.logger import get_logger
from coupon_engine.engine.models import UsageContext, normalize_code
from coupon_engine.utils.mongo import maybe_oid, stamp_create

COLL = REDEMPTIONS_COLL
log = get_logger("ledger")


class RedemptionOutcome(str, Enum):
    recorded = "recorded"
    duplicate = "duplicate"
    order_conflict = "order_conflict"
    not_found = "not_found"
    limit_exceeded = "limit_exceeded"
    per_user_limit_exceeded = "per_user_limit_exceeded"
    user_identity_required = "user_identity_required"


class _Abort(Exception):
    def __init__(self, outcome: RedemptionOutcome):
        super().__init__(outcome.value)
        self.outcome = outcome


# usage_limit unset (or legacy 0) means unlimited
_UNDER_LIMIT = {
    "$or": [
        {"usage_limit": None},
        {"usage_limit": 0},
        {"$expr": {"$lt": ["$used_count", "$usage_limit"]}},
    ]
}


async def count_for_user(coupon_id: Any, user_id: Any, session=None) -> int:
    # keyed on coupon_id: renaming a code keeps its history
    return await db[COLL].count_documents(
        {"coupon_id": maybe_oid(coupon_id), "user_id": maybe_oid(user_id)}, session=session
    )


async def get_usage(code: str, user_id: Any = None) -> Optional[UsageContext]:
    """
    Global and per-user redemption counts for a code.
    Returns None when the coupon does not exist.
    """
    coupon = await db[COUPONS_COLL].find_one(
        {"code": normalize_code(code)}, projection={"used_count": 1}
    )
    if not coupon:
        return None
    user_used = await count_for_user(coupon["_id"], user_id) if user_id else 0
    return UsageContext(global_used=int(coupon.get("used_count") or 0), user_used=user_used)


async def _existing_outcome(order_oid: Any, coupon_id: Any) -> Optional[RedemptionOutcome]:
    prior = await db[COLL].find_one({"order_id": order_oid}, projection={"coupon_id": 1})
    if not prior:
        return None
    if prior.get("coupon_id") == coupon_id:
        return RedemptionOutcome.duplicate
    return RedemptionOutcome.order_conflict


async def confirm_redemption(
    code: str, user_id: Any, order_id: Any
) -> Tuple[RedemptionOutcome, Optional[int]]:
    """
    Record one redemption of `code` for `order_id` and bump `used_count`.

    Returns:
        (outcome, used_count after the call; None when the coupon is unknown)

    Raises:
        pymongo.errors.PyMongoError: ledger write failures (retryable by the caller).
    """
    code = normalize_code(code)
    order_oid = maybe_oid(order_id)
    user_val = maybe_oid(user_id) if user_id else None

    coupon = await db[COUPONS_COLL].find_one(
        {"code": code}, projection={"used_count": 1, "per_user_limit": 1}
    )
    if not coupon:
        return RedemptionOutcome.not_found, None
    used_before = int(coupon.get("used_count") or 0)

    existing = await _existing_outcome(order_oid, coupon["_id"])
    if existing is not None:
        return existing, used_before

    per_user_limit = coupon.get("per_user_limit")
    if per_user_limit and user_val is None:
        return RedemptionOutcome.user_identity_required, used_before

    try:
        async with await db.client.start_session() as session:
            async with session.start_transaction():
                await db[COLL].insert_one(
                    stamp_create({
                        "code": code,
                        "coupon_id": coupon["_id"],
                        "user_id": user_val,
                        "order_id": order_oid,
                    }),
                    session=session,
                )

                if per_user_limit:
                    # count includes the line just inserted
                    n = await count_for_user(coupon["_id"], user_val, session=session)
                    if n > per_user_limit:
                        raise _Abort(RedemptionOutcome.per_user_limit_exceeded)

                updated = await db[COUPONS_COLL].find_one_and_update(
                    {"_id": coupon["_id"], **_UNDER_LIMIT},
                    {"$inc": {"used_count": 1}, "$currentDate": {"updatedAt": True}},
                    projection={"used_count": 1},
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
                if updated is None:
                    raise _Abort(RedemptionOutcome.limit_exceeded)
    except _Abort as abort:
        log.info("Redemption of %s for order %s refused: %s", code, order_oid, abort.outcome.value)
        return abort.outcome, used_before
    except DuplicateKeyError:
        # a concurrent confirmation of the same order won the insert
        outcome = await _existing_outcome(order_oid, coupon["_id"]) or RedemptionOutcome.duplicate
        return outcome, used_before

    log.info("Redeemed %s for order %s (used_count=%s)", code, order_oid, updated["used_count"])
    return RedemptionOutcome.recorded, int(updated["used_count"])
