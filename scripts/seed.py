# seed.py
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Any, Tuple

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import OperationFailure

from coupon_engine.core.config import settings
from coupon_engine.core.database import ensure_indexes as ensure_app_indexes
from coupon_engine.core.logger import get_logger

log = get_logger("seed")

# Execute `python -m scripts.seed`
# -----------------------
# Safe index creation
# -----------------------
async def safe_create_index(coll, keys, **opts):
    try:
        return await coll.create_index(keys, **opts)
    except OperationFailure as e:
        # IndexOptionsConflict (exists with different name/options)
        if e.code == 85:
            return None
        raise


# -----------------------
# Index configs
# -----------------------
# coupons, coupon_redemptions and token_revocations are owned by
# coupon_engine.core.database.ensure_indexes
UNIQUE_FIELDS: Dict[str, List[str]] = {
    "user_roles": ["role"],
}

FK_INDEXES: Dict[str, List[str]] = {
    "cart_items": ["cart_id"],
}


async def ensure_indexes(db):
    await ensure_app_indexes(db)

    for coll, uniques in UNIQUE_FIELDS.items():
        for field in uniques:
            await safe_create_index(db[coll], [(field, 1)], name=f"uniq_{field}", unique=True)

    for coll, fk_fields in FK_INDEXES.items():
        for field in fk_fields:
            await safe_create_index(db[coll], [(field, 1)], name=f"idx_{field}")


# -----------------------
# Lookup seeding
# -----------------------
LOOKUP_SEED: Dict[str, List[Dict[str, Any]]] = {
    "user_roles": [
        {"role": "admin"},
        {"role": "user"},
    ],
}

LOOKUP_MATCH_KEYS: Dict[str, List[str]] = {
    "user_roles": ["role"],
}


def _build_match(doc: Dict[str, Any], keys: List[str]) -> Dict[str, Any]:
    return {k: doc[k] for k in keys if k in doc}


async def seed_lookup_collections(db):
    now = datetime.now(timezone.utc)
    for coll, items in LOOKUP_SEED.items():
        keys = LOOKUP_MATCH_KEYS.get(coll)
        if not items or not keys:
            continue

        for item in items:
            match = _build_match(item, keys)
            if not match:
                continue
            await db[coll].update_one(
                match,
                {
                    "$set": {**item, "updatedAt": now},
                    "$setOnInsert": {"createdAt": now},
                },
                upsert=True,
            )


# -----------------------
# Sample coupons
# -----------------------
def sample_coupons(now: datetime) -> Tuple[List[Dict[str, Any]], Dict[str, datetime]]:
    window = {"start_date": now, "expiry_date": now + timedelta(days=365)}
    return [
        {"code": "SAVE10", "kind": "percentage", "value": 10.0, "usage_limit": 100, "per_user_limit": None},
        {"code": "FLAT50", "kind": "flat", "value": 50.0, "usage_limit": None, "per_user_limit": 1},
        {"code": "WELCOME10", "kind": "percentage", "value": 10.0, "usage_limit": None, "per_user_limit": 1},
    ], window


async def seed_coupons(db):
    now = datetime.now(timezone.utc)
    coupons, window = sample_coupons(now)
    for c in coupons:
        await db["coupons"].update_one(
            {"code": c["code"]},
            {
                "$set": {**c, "updatedAt": now},
                "$setOnInsert": {
                    "applicable_product_ids": [],
                    "applicable_category_ids": [],
                    "applicable_brand_ids": [],
                    **window,
                    "used_count": 0,
                    "active": True,
                    "created_by": None,
                    "createdAt": now,
                },
            },
            upsert=True,
        )


# -----------------------
# Main
# -----------------------
async def main():
    client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
    try:
        db = client[settings.MONGO_DB]

        # 1) Indexes
        await ensure_indexes(db)

        # 2) Roles (idempotent)
        await seed_lookup_collections(db)

        # 3) Coupons (idempotent; never resets used_count)
        await seed_coupons(db)

        log.info("Seed complete: indexes, roles, and sample coupons populated.")
    except Exception as e:
        log.error("Error during seeding: %s", e)
        raise
    finally:
        client.close()

if __name__ == "__main__":
    asyncio.run(main())
