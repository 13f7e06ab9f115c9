"""Pytest configuration and shared factories for the coupon engine tests."""

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

# Point the app at a throwaway database before any coupon_engine import.
os.environ.setdefault("MONGO_DB", "coupon_engine_test")
os.environ.setdefault("JWT_ACCESS_TOKEN_SECRET", "test-secret")

from coupon_engine.engine.models import CartLine, CartSnapshot, Coupon  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_coupon():
    """Factory for an active, in-window, unrestricted 10% coupon; override any field."""

    def _make(**overrides) -> Coupon:
        data = {
            "code": "SAVE10",
            "kind": "percentage",
            "value": Decimal("10"),
            "start_date": NOW - timedelta(days=1),
            "expiry_date": NOW + timedelta(days=30),
            "usage_limit": None,
            "per_user_limit": None,
            "used_count": 0,
            "active": True,
        }
        data.update(overrides)
        return Coupon(**data)

    return _make


@pytest.fixture
def make_line():
    def _make(product_id="p1", price="100.00", quantity=1, category_id="c1", brand_id="b1") -> CartLine:
        return CartLine(
            product_id=product_id,
            category_id=category_id,
            brand_id=brand_id,
            unit_price=Decimal(price),
            quantity=quantity,
        )

    return _make


@pytest.fixture
def make_cart():
    def _make(*lines) -> CartSnapshot:
        return CartSnapshot(lines=tuple(lines))

    return _make
