# coupon_engine/crud/cart_items.py
from __future__ import annotations
from typing import Any, List

from coupon_engine.core.database import db
from coupon_engine.utils.mongo import maybe_oid

COLL = "cart_items"
# upper bound on lines read from one stored cart
MAX_CART_LINES = 500


async def list_for_cart(cart_id: Any) -> List[dict]:
    """Cart lines (cart_id, product_id, size, quantity) in the order they were added."""
    cur = (
        db[COLL]
        .find({"cart_id": maybe_oid(cart_id)}, projection={"product_id": 1, "size": 1, "quantity": 1})
        .sort("createdAt", 1)
    )
    return await cur.to_list(length=MAX_CART_LINES)
