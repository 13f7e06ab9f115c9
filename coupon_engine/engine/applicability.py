"""Which cart lines a coupon's product/category/brand restrictions cover."""

from __future__ import annotations
from decimal import Decimal
from typing import Iterable, List, Set

from coupon_engine.engine.models import ZERO, CartLine, Coupon, FilterPolicy


def filter_policy(coupon: Coupon) -> Set[FilterPolicy]:
    """
    The restricting filter sets of a coupon, combined with OR semantics.
    An unrestricted coupon yields {no_restriction}.
    """
    policy: Set[FilterPolicy] = set()
    if coupon.applicable_product_ids:
        policy.add(FilterPolicy.product_list)
    if coupon.applicable_category_ids:
        policy.add(FilterPolicy.category_list)
    if coupon.applicable_brand_ids:
        policy.add(FilterPolicy.brand_list)
    return policy or {FilterPolicy.no_restriction}


def matches(line: CartLine, coupon: Coupon) -> bool:
    if FilterPolicy.no_restriction in filter_policy(coupon):
        return True
    if line.product_id in coupon.applicable_product_ids:
        return True
    if line.category_id is not None and line.category_id in coupon.applicable_category_ids:
        return True
    # a line with no brand never satisfies a brand restriction
    return line.brand_id is not None and line.brand_id in coupon.applicable_brand_ids


def eligible_lines(lines: Iterable[CartLine], coupon: Coupon) -> List[CartLine]:
    return [line for line in lines if matches(line, coupon)]


def eligible_subtotal(lines: Iterable[CartLine], coupon: Coupon) -> Decimal:
    return sum((line.line_total for line in eligible_lines(lines, coupon)), ZERO)
