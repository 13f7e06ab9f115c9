# coupon_engine/crud/products.py
from __future__ import annotations
from typing import Any, Dict, Iterable

from coupon_engine.core.database import db
from coupon_engine.utils.mongo import to_oid

COLL = "products"
PRICING_FIELDS = {"_id": 1, "price": 1, "category_id": 1, "brand_id": 1}


async def get_pricing_map(product_ids: Iterable[Any]) -> Dict[str, dict]:
    """
    Fetch price, category and brand for a set of products in one query.
    Keys are the products' ids as strings; unknown ids are simply absent.
    """
    oids = list({oid for oid in (to_oid(p) for p in product_ids) if oid})
    if not oids:
        return {}
    cur = db[COLL].find({"_id": {"$in": oids}}, projection=PRICING_FIELDS)
    docs = await cur.to_list(length=len(oids))
    return {str(d["_id"]): d for d in docs}
