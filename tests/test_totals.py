"""Tests for checkout totals: shipping threshold, GST rounding, discount application."""

from datetime import timedelta
from decimal import Decimal

from coupon_engine.engine.evaluator import evaluate
from coupon_engine.engine.models import CartSnapshot
from coupon_engine.engine.totals import compute_order_totals


def test_shipping_charged_at_threshold(make_line, make_cart):
    totals = compute_order_totals(make_cart(make_line(price="999.00")))
    assert totals.shipping == Decimal("49.00")
    # 999 * 0.18 = 179.82 -> 180
    assert totals.tax == Decimal("180.00")
    assert totals.original_total == Decimal("1228.00")
    assert totals.final_total == totals.original_total
    assert totals.currency == "INR"


def test_free_shipping_above_threshold(make_line, make_cart):
    totals = compute_order_totals(make_cart(make_line(price="999.01")))
    assert totals.shipping == Decimal("0.00")


def test_tax_rounds_half_up_to_whole_units(make_line, make_cart):
    # 2.50 * 0.18 = 0.45 -> 0 ; 25.00 * 0.18 = 4.50 -> 5
    assert compute_order_totals(make_cart(make_line(price="2.50"))).tax == Decimal("0.00")
    assert compute_order_totals(make_cart(make_line(price="25.00"))).tax == Decimal("5.00")


def test_eligible_discount_reduces_final_total(make_coupon, make_line, make_cart, now):
    cart = make_cart(make_line(price="250.00"))
    decision = evaluate("SAVE10", make_coupon(), cart, now=now)
    totals = compute_order_totals(cart, decision)
    # 250 + 49 shipping + 45 tax = 344; minus 25
    assert totals.original_total == Decimal("344.00")
    assert totals.discount_amount == Decimal("25.00")
    assert totals.final_total == Decimal("319.00")


def test_rejected_decision_is_ignored(make_coupon, make_line, make_cart, now):
    cart = make_cart(make_line(price="250.00"))
    decision = evaluate("SAVE10", make_coupon(expiry_date=now - timedelta(days=1)), cart, now=now)
    totals = compute_order_totals(cart, decision)
    assert totals.discount_amount == Decimal("0")
    assert totals.final_total == totals.original_total


def test_custom_pricing_parameters(make_line, make_cart):
    totals = compute_order_totals(
        make_cart(make_line(price="100.00")),
        free_shipping_threshold=Decimal("50"),
        shipping_fee=Decimal("10"),
        tax_rate=Decimal("0.05"),
        currency="EUR",
    )
    assert totals.shipping == Decimal("0.00")
    assert totals.tax == Decimal("5.00")
    assert totals.final_total == Decimal("105.00")
    assert totals.currency == "EUR"


def test_empty_cart_still_pays_shipping():
    totals = compute_order_totals(CartSnapshot())
    assert totals.subtotal == Decimal("0")
    assert totals.shipping == Decimal("49.00")
