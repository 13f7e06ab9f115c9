"""Tests for the product/category/brand applicability filter."""

from decimal import Decimal

from coupon_engine.engine.applicability import eligible_lines, eligible_subtotal, filter_policy, matches
from coupon_engine.engine.models import FilterPolicy


class TestFilterPolicy:
    def test_unrestricted(self, make_coupon):
        assert filter_policy(make_coupon()) == {FilterPolicy.no_restriction}

    def test_combined_sets(self, make_coupon):
        coupon = make_coupon(applicable_product_ids=["p1"], applicable_brand_ids=["b1"])
        assert filter_policy(coupon) == {FilterPolicy.product_list, FilterPolicy.brand_list}


class TestMatches:
    def test_unrestricted_matches_everything(self, make_coupon, make_line):
        assert matches(make_line(category_id=None, brand_id=None), make_coupon())

    def test_product_match(self, make_coupon, make_line):
        coupon = make_coupon(applicable_product_ids=["p1"])
        assert matches(make_line(product_id="p1"), coupon)
        assert not matches(make_line(product_id="p2"), coupon)

    def test_category_match(self, make_coupon, make_line):
        coupon = make_coupon(applicable_category_ids=["c9"])
        assert matches(make_line(category_id="c9"), coupon)
        assert not matches(make_line(category_id="c1"), coupon)

    def test_brand_match(self, make_coupon, make_line):
        coupon = make_coupon(applicable_brand_ids=["B1"])
        assert matches(make_line(brand_id="B1"), coupon)
        assert not matches(make_line(brand_id="B2"), coupon)

    def test_sets_are_or_combined(self, make_coupon, make_line):
        """Any one set matching is enough."""
        coupon = make_coupon(applicable_product_ids=["p9"], applicable_brand_ids=["b1"])
        assert matches(make_line(product_id="p1", brand_id="b1"), coupon)

    def test_line_without_brand_never_matches_brand_filter(self, make_coupon, make_line):
        coupon = make_coupon(applicable_brand_ids=["b1"])
        assert not matches(make_line(brand_id=None), coupon)

    def test_object_ids_compared_as_strings(self, make_coupon, make_line):
        from bson import ObjectId

        oid = ObjectId()
        coupon = make_coupon(applicable_product_ids=[oid])
        assert matches(make_line(product_id=str(oid)), coupon)

    def test_deterministic(self, make_coupon, make_line):
        coupon = make_coupon(applicable_category_ids=["c1"])
        line = make_line()
        assert matches(line, coupon) == matches(line, coupon)


def test_eligible_subtotal_only_counts_matching_lines(make_coupon, make_line):
    coupon = make_coupon(applicable_brand_ids=["b1"])
    lines = [
        make_line(product_id="p1", price="100.00", quantity=2, brand_id="b1"),
        make_line(product_id="p2", price="999.99", quantity=1, brand_id="b2"),
    ]
    assert [l.product_id for l in eligible_lines(lines, coupon)] == ["p1"]
    assert eligible_subtotal(lines, coupon) == Decimal("200.00")
