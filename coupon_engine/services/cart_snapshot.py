"""
Cart snapshot resolution.

Turns request lines or a stored cart into a fully materialized
CartSnapshot (price, category, brand per line) so evaluation needs no
further lookups.
"""

from __future__ import annotations
from typing import Any, List

from fastapi import HTTPException

from coupon_engine.core.logger import get_logger
from coupon_engine.crud import cart_items as cart_crud
from coupon_engine.crud import products as products_crud
from coupon_engine.engine.models import CartLine, CartSnapshot
from coupon_engine.schemas.coupons import CheckoutLineIn

log = get_logger("cart")


def _line(product_id: Any, quantity: int, unit_price: Any, product: dict) -> CartLine:
    price = unit_price if unit_price is not None else (product.get("price") or 0)
    return CartLine(
        product_id=str(product_id),
        category_id=product.get("category_id"),
        brand_id=product.get("brand_id"),
        unit_price=price,
        quantity=quantity,
    )


async def resolve_cart_snapshot(lines: List[CheckoutLineIn], catalog_prices_only: bool = False) -> CartSnapshot:
    """
    Build a snapshot from request lines. A line's own unit_price wins over
    the catalog price unless catalog_prices_only is set; checkout totals
    always use it.

    Raises:
        HTTPException: 400 when a product id is not in the catalog.
    """
    if not lines:
        return CartSnapshot()

    pricing = await products_crud.get_pricing_map(line.product_id for line in lines)
    missing = [str(line.product_id) for line in lines if str(line.product_id) not in pricing]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown products: {', '.join(missing)}")

    return CartSnapshot(
        lines=tuple(
            _line(
                line.product_id,
                line.quantity,
                None if catalog_prices_only else getattr(line, "unit_price", None),
                pricing[str(line.product_id)],
            )
            for line in lines
        )
    )


async def resolve_user_cart_snapshot(cart_id: Any) -> CartSnapshot:
    """Build a snapshot from the caller's stored cart, priced from the catalog."""
    items = await cart_crud.list_for_cart(cart_id)
    if not items:
        return CartSnapshot()

    pricing = await products_crud.get_pricing_map(item["product_id"] for item in items)
    lines = []
    for item in items:
        product = pricing.get(str(item["product_id"]))
        if product is None:
            # product removed from the catalog after it was carted
            log.warning("Skipping cart line %s: product %s not found", item.get("_id"), item["product_id"])
            continue
        lines.append(_line(item["product_id"], int(item.get("quantity") or 1), None, product))
    return CartSnapshot(lines=tuple(lines))
