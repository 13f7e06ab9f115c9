"""
Usage-ledger tests against a live MongoDB replica set (transactions need
one). Skipped when none is reachable at MONGO_URI.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from coupon_engine.core.config import settings
from coupon_engine.core.database import ensure_indexes
from coupon_engine.crud import coupon_redemptions as ledger
from coupon_engine.crud import coupons as coupons_crud
from coupon_engine.crud.coupon_redemptions import RedemptionOutcome
from coupon_engine.schemas.coupons import CouponsCreate, CouponsUpdate


@pytest_asyncio.fixture
async def mongo(monkeypatch):
    client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True, serverSelectionTimeoutMS=1000)
    try:
        hello = await client.admin.command("hello")
    except PyMongoError:
        client.close()
        pytest.skip("MongoDB not reachable")
    if not hello.get("setName"):
        client.close()
        pytest.skip("MongoDB is not a replica set; transactions unavailable")

    db = client[settings.MONGO_DB]
    monkeypatch.setattr(ledger, "db", db)
    monkeypatch.setattr(coupons_crud, "db", db)

    await db.drop_collection("coupons")
    await db.drop_collection("coupon_redemptions")
    await ensure_indexes(db)
    yield db
    await db.coupons.delete_many({})
    await db.coupon_redemptions.delete_many({})
    client.close()


async def _create(code, **kwargs):
    payload = CouponsCreate(
        code=code,
        kind=kwargs.pop("kind", "percentage"),
        value=kwargs.pop("value", 10),
        expiry_date=datetime.now(timezone.utc) + timedelta(days=30),
        **kwargs,
    )
    return await coupons_crud.create(payload)


@pytest.mark.asyncio
async def test_confirm_is_idempotent_per_order(mongo):
    await _create("SAVE10", usage_limit=100)
    order, user = ObjectId(), ObjectId()

    first = await ledger.confirm_redemption("save10", user, order)
    second = await ledger.confirm_redemption("SAVE10", user, order)

    assert first == (RedemptionOutcome.recorded, 1)
    assert second == (RedemptionOutcome.duplicate, 1)
    assert await mongo.coupon_redemptions.count_documents({"order_id": order}) == 1


@pytest.mark.asyncio
async def test_order_cannot_redeem_two_codes(mongo):
    await _create("SAVE10")
    await _create("FLAT50", kind="flat", value=50)
    order = ObjectId()

    await ledger.confirm_redemption("SAVE10", None, order)
    outcome, _ = await ledger.confirm_redemption("FLAT50", None, order)

    assert outcome == RedemptionOutcome.order_conflict
    assert (await coupons_crud.get_by_code("FLAT50")).used_count == 0


@pytest.mark.asyncio
async def test_global_limit_never_exceeded_under_concurrency(mongo):
    await _create("LIMIT3", usage_limit=3)

    async def attempt():
        # transient write conflicts surface as PyMongoError; callers retry
        for _ in range(20):
            try:
                return (await ledger.confirm_redemption("LIMIT3", None, ObjectId()))[0]
            except PyMongoError:
                await asyncio.sleep(0.01)
        return None

    outcomes = await asyncio.gather(*(attempt() for _ in range(10)))

    assert outcomes.count(RedemptionOutcome.recorded) == 3
    coupon = await coupons_crud.get_by_code("LIMIT3")
    assert coupon.used_count == 3
    assert await mongo.coupon_redemptions.count_documents({"code": "LIMIT3"}) == 3


@pytest.mark.asyncio
async def test_per_user_limit(mongo):
    once = await _create("ONCE", per_user_limit=1)
    user = ObjectId()

    assert (await ledger.confirm_redemption("ONCE", user, ObjectId()))[0] == RedemptionOutcome.recorded
    outcome, used = await ledger.confirm_redemption("ONCE", user, ObjectId())
    assert outcome == RedemptionOutcome.per_user_limit_exceeded
    assert used == 1

    anon, _ = await ledger.confirm_redemption("ONCE", None, ObjectId())
    assert anon == RedemptionOutcome.user_identity_required
    assert await ledger.count_for_user(once.id, user) == 1


@pytest.mark.asyncio
async def test_renamed_code_keeps_history(mongo):
    once = await _create("ONCE", per_user_limit=1)
    user, order = ObjectId(), ObjectId()
    await ledger.confirm_redemption("ONCE", user, order)

    await coupons_crud.update_one(once.id, CouponsUpdate(code="ONCE2"))

    usage = await ledger.get_usage("ONCE2", user)
    assert (usage.global_used, usage.user_used) == (1, 1)
    assert (await ledger.confirm_redemption("ONCE2", user, order))[0] == RedemptionOutcome.duplicate
    outcome, _ = await ledger.confirm_redemption("ONCE2", user, ObjectId())
    assert outcome == RedemptionOutcome.per_user_limit_exceeded


@pytest.mark.asyncio
async def test_unknown_code(mongo):
    assert await ledger.confirm_redemption("MISSING", None, ObjectId()) == (RedemptionOutcome.not_found, None)


@pytest.mark.asyncio
async def test_get_usage_and_delete_deactivates_redeemed(mongo):
    created = await _create("SAVE10")
    user = ObjectId()
    await ledger.confirm_redemption("SAVE10", user, ObjectId())

    usage = await ledger.get_usage("SAVE10", user)
    assert (usage.global_used, usage.user_used) == (1, 1)

    assert await coupons_crud.delete_one(created.id) is False
    assert (await coupons_crud.get_one(created.id)).active is False

    unused = await _create("UNUSED")
    assert await coupons_crud.delete_one(unused.id) is True
    assert await coupons_crud.get_one(unused.id) is None
