# coupon_engine/crud/coupons.py
from __future__ import annotations
from typing import List, Optional, Dict, Any

from coupon_engine.core.database import db, COUPONS_COLL, REDEMPTIONS_COLL
from coupon_engine.engine.models import Coupon, normalize_code
from coupon_engine.utils.mongo import stamp_create, stamp_update, to_oid, utcnow
from coupon_engine.schemas.object_id import PyObjectId
from coupon_engine.schemas.coupons import CouponsCreate, CouponsUpdate, CouponsOut

COLL = COUPONS_COLL
LIMIT_FIELDS = ("usage_limit", "per_user_limit")


def _to_out(doc: dict) -> CouponsOut:
    return CouponsOut.model_validate(doc)


def to_rule(doc: dict) -> Coupon:
    """Immutable evaluation value for a stored coupon document."""
    return Coupon.model_validate(doc)


async def create(payload: CouponsCreate, created_by: Any = None) -> CouponsOut:
    # keep native types (ObjectId/datetime)
    doc = payload.model_dump(mode="python")
    doc["kind"] = payload.kind.value
    doc["start_date"] = doc.get("start_date") or utcnow()
    doc["used_count"] = 0
    doc["created_by"] = to_oid(created_by) if created_by is not None else None
    res = await db[COLL].insert_one(stamp_create(doc))
    saved = await db[COLL].find_one({"_id": res.inserted_id})
    return _to_out(saved)


async def list_all(
    skip: int = 0,
    limit: int = 50,
    query: Dict[str, Any] | None = None,
) -> List[CouponsOut]:
    cur = (
        db[COLL]
        .find(query or {})
        .skip(max(0, int(skip)))
        .limit(max(0, int(limit)))
        .sort("createdAt", -1)
    )
    docs = await cur.to_list(length=limit)
    return [_to_out(d) for d in docs]


async def get_one(_id: PyObjectId) -> Optional[CouponsOut]:
    doc = await db[COLL].find_one({"_id": _id})
    return _to_out(doc) if doc else None


async def get_doc_by_code(code: str) -> Optional[dict]:
    return await db[COLL].find_one({"code": normalize_code(code)})


async def get_by_code(code: str) -> Optional[Coupon]:
    doc = await get_doc_by_code(code)
    return to_rule(doc) if doc else None


async def update_one(_id: PyObjectId, payload: CouponsUpdate) -> Optional[CouponsOut]:
    data = payload.model_dump(mode="python", exclude_none=True)
    if not data:
        return None
    if "kind" in data:
        data["kind"] = payload.kind.value
    # 0 clears a limit
    for field in LIMIT_FIELDS:
        if data.get(field) == 0:
            data[field] = None

    await db[COLL].update_one({"_id": _id}, {"$set": stamp_update(data)})
    doc = await db[COLL].find_one({"_id": _id})
    return _to_out(doc) if doc else None


async def delete_one(_id: PyObjectId) -> Optional[bool]:
    """
    Returns:
      - True  -> deleted
      - False -> referenced by redemptions; deactivated instead
      - None  -> not found
    """
    doc = await db[COLL].find_one({"_id": _id}, projection={"_id": 1})
    if not doc:
        return None

    used = await db[REDEMPTIONS_COLL].find_one({"coupon_id": _id})
    if used:
        await db[COLL].update_one({"_id": _id}, {"$set": stamp_update({"active": False})})
        return False

    r = await db[COLL].delete_one({"_id": _id})
    return r.deleted_count == 1
