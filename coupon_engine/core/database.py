from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING

from coupon_engine.core.config import settings
from coupon_engine.core.logger import get_logger

log = get_logger("database")

# tz_aware so validity-window comparisons always see UTC datetimes
client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
db = client[settings.MONGO_DB]

COUPONS_COLL = "coupons"
REDEMPTIONS_COLL = "coupon_redemptions"


async def ensure_indexes(database=None):
    """
    Create the indexes the repository and the usage ledger rely on.
    Names are fixed so startup and scripts/seed.py agree on them.
    """
    database = db if database is None else database
    coupons = database[COUPONS_COLL]
    redemptions = database[REDEMPTIONS_COLL]
    await coupons.create_index([("code", ASCENDING)], name="uniq_code", unique=True)
    await coupons.create_index(
        [("active", ASCENDING), ("expiry_date", ASCENDING)], name="idx_compound_active_expiry_date"
    )
    await redemptions.create_index([("order_id", ASCENDING)], name="uniq_order_id", unique=True)
    await redemptions.create_index(
        [("coupon_id", ASCENDING), ("user_id", ASCENDING)], name="idx_compound_coupon_id_user_id"
    )
    await database["token_revocations"].create_index(
        [("expiresAt", ASCENDING)], name="ttl_expiresAt", expireAfterSeconds=0
    )
    log.info("MongoDB indexes ensured on %s", database.name)


# close the MongoDB connection on application shutdown
async def close_mongo_connection():
    client.close()
