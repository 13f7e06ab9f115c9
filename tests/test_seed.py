"""scripts/seed.py: index names shared with app startup, and the seeded data."""

import pytest
from pymongo.errors import OperationFailure

from coupon_engine.core.database import ensure_indexes
from scripts import seed


def _key(keys):
    if isinstance(keys, str):
        return ((keys, 1),)
    return tuple((field, int(direction)) for field, direction in keys)


class RecordingCollection:
    """Behaves like MongoDB for create_index: same key under another name is error 85."""

    def __init__(self):
        self.indexes = {}

    async def create_index(self, keys, name=None, **opts):
        key = _key(keys)
        existing = self.indexes.get(key)
        if existing is not None and existing != name:
            raise OperationFailure("Index already exists with a different name", code=85)
        self.indexes[key] = name
        return name


class RecordingDatabase:
    name = "coupon_engine_test"

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, RecordingCollection())


@pytest.mark.asyncio
async def test_seed_then_startup():
    db = RecordingDatabase()
    await seed.ensure_indexes(db)
    await ensure_indexes(db)

    assert db["coupons"].indexes[(("code", 1),)] == "uniq_code"
    assert db["coupon_redemptions"].indexes[(("order_id", 1),)] == "uniq_order_id"
    assert db["coupon_redemptions"].indexes[(("coupon_id", 1), ("user_id", 1))] == "idx_compound_coupon_id_user_id"


@pytest.mark.asyncio
async def test_startup_then_seed_keeps_one_name_per_key():
    db = RecordingDatabase()
    await ensure_indexes(db)
    before = {name: dict(coll.indexes) for name, coll in db.collections.items()}

    await seed.ensure_indexes(db)

    for name, indexes in before.items():
        assert db[name].indexes == indexes
    assert db["user_roles"].indexes == {(("role", 1),): "uniq_role"}


class UpsertCollection:
    def __init__(self):
        self.upserts = []

    async def update_one(self, match, update, upsert=False):
        self.upserts.append((match, update))


class UpsertDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, UpsertCollection())


@pytest.mark.asyncio
async def test_lookup_seed_only_writes_roles():
    db = UpsertDatabase()
    await seed.seed_lookup_collections(db)

    assert set(db.collections) == {"user_roles"}
    assert [m for m, _ in db["user_roles"].upserts] == [{"role": "admin"}, {"role": "user"}]


@pytest.mark.asyncio
async def test_sample_coupons_never_reset_usage():
    db = UpsertDatabase()
    await seed.seed_coupons(db)

    codes = [m["code"] for m, _ in db["coupons"].upserts]
    assert codes == ["SAVE10", "FLAT50", "WELCOME10"]
    for _, update in db["coupons"].upserts:
        assert "used_count" not in update["$set"]
        assert update["$setOnInsert"]["used_count"] == 0
