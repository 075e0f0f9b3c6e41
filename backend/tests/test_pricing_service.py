# Overview: Pytest coverage for tiered price and volume discount resolution.

"""
Pricing Resolution Tests

Covers:
1. Tier selection by quantity (min_quantity descending, first match)
2. Organization-specific tiers beat general tiers
3. Catalog list price fallback on line pricing (not on get_wholesale_price)
4. Discount scope precedence: product > category > general
5. Percentage vs fixed-amount discounts
6. Batch validation before pricing
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from procure.errors import BusinessRuleError, NotFoundError, ValidationError
from procure.models import VolumeDiscount, WholesalePrice
from procure.models.pricing import SCOPE_CATEGORY, SCOPE_GENERAL, SCOPE_PRODUCT
from procure.services import pricing_service
from procure.services.pricing_service import RequestedLine
from procure.services.reference_data import load_pricing_snapshot
from procure.time_utils import utcnow


def _price(db_session, product_id, min_qty, price, *, org_id=None, max_qty=None, **kwargs):
    rule = WholesalePrice(
        product_id=product_id,
        org_id=org_id,
        min_quantity=min_qty,
        max_quantity=max_qty,
        price_cents=price,
        **kwargs,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


def _discount(db_session, scope_type, scope_id, min_qty, bps=0, *, org_id=None, fixed=None, **kwargs):
    rule = VolumeDiscount(
        scope_type=scope_type,
        scope_id=scope_id,
        org_id=org_id,
        min_quantity=min_qty,
        discount_bps=bps,
        fixed_discount_cents=fixed,
        **kwargs,
    )
    db_session.add(rule)
    db_session.commit()
    return rule


class TestWholesalePriceTiers:
    """Quantity tier selection."""

    @pytest.fixture
    def tiered(self, db_session, product):
        _price(db_session, product.id, 1, 100)
        _price(db_session, product.id, 10, 90)
        _price(db_session, product.id, 50, 80)
        return product

    @pytest.mark.parametrize("quantity,expected", [(5, 100), (25, 90), (100, 80), (10, 90), (50, 80), (1, 100)])
    def test_tier_selection(self, tiered, quantity, expected):
        """The highest min_quantity tier that covers the quantity wins."""
        assert pricing_service.get_wholesale_price(tiered.id, quantity) == expected

    def test_max_quantity_bounds_tier(self, db_session, product):
        """A tier whose max is below the quantity is skipped."""
        _price(db_session, product.id, 1, 100, max_qty=9)
        _price(db_session, product.id, 10, 90, max_qty=49)
        assert pricing_service.get_wholesale_price(product.id, 49) == 90
        assert pricing_service.get_wholesale_price(product.id, 50) is None

    def test_no_tier_returns_none(self, db_session, product):
        """get_wholesale_price does not fall back to the list price."""
        assert pricing_service.get_wholesale_price(product.id, 3) is None

    def test_org_specific_beats_general(self, db_session, org, product):
        """Org tier is preferred even when the general tier is cheaper."""
        _price(db_session, product.id, 1, 70)
        _price(db_session, product.id, 1, 95, org_id=org.id)
        assert pricing_service.get_wholesale_price(product.id, 5, org.id) == 95

    def test_general_used_when_org_tier_does_not_cover(self, db_session, org, product):
        """Org pass finds nothing for this quantity, general pass applies."""
        _price(db_session, product.id, 100, 60, org_id=org.id)
        _price(db_session, product.id, 1, 90)
        assert pricing_service.get_wholesale_price(product.id, 5, org.id) == 90
        assert pricing_service.get_wholesale_price(product.id, 150, org.id) == 60

    def test_other_org_rules_ignored(self, db_session, org, other_org, product):
        """Rules scoped to another organization never apply."""
        _price(db_session, product.id, 1, 10, org_id=other_org.id)
        assert pricing_service.get_wholesale_price(product.id, 5, org.id) is None
        assert pricing_service.get_wholesale_price(product.id, 5) is None

    def test_equal_min_quantity_first_loaded_wins(self, db_session, product):
        """Stable ordering: equal min_quantity keeps creation order."""
        _price(db_session, product.id, 10, 85)
        _price(db_session, product.id, 10, 75)
        assert pricing_service.get_wholesale_price(product.id, 20) == 85

    def test_inactive_deleted_and_expired_rules_ignored(self, db_session, product):
        now = utcnow()
        _price(db_session, product.id, 1, 10, is_active=False)
        _price(db_session, product.id, 1, 20, is_deleted=True)
        _price(db_session, product.id, 1, 30, end_date=now - timedelta(days=1))
        _price(db_session, product.id, 1, 40, start_date=now + timedelta(days=1))
        assert pricing_service.get_wholesale_price(product.id, 5) is None

    def test_idempotent_read(self, db_session, org, product):
        """Repeated reads with unchanged data give identical results."""
        _price(db_session, product.id, 1, 100)
        _price(db_session, product.id, 10, 90, org_id=org.id)
        first = pricing_service.get_wholesale_price(product.id, 12, org.id)
        second = pricing_service.get_wholesale_price(product.id, 12, org.id)
        assert first == second == 90

    def test_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            pricing_service.get_wholesale_price(999999, 1)

    @pytest.mark.parametrize("quantity", [0, -1, True, "3"])
    def test_invalid_quantity(self, db_session, product, quantity):
        with pytest.raises(ValidationError):
            pricing_service.get_wholesale_price(product.id, quantity)


class TestVolumeDiscountScopes:
    """Scope fallback and precedence."""

    def test_product_beats_category_regardless_of_magnitude(self, db_session, product, category):
        _discount(db_session, SCOPE_PRODUCT, product.id, 1, 500)
        _discount(db_session, SCOPE_CATEGORY, category.id, 1, 2000)
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("5.00")

    def test_category_used_when_no_product_rule(self, db_session, product, category):
        _discount(db_session, SCOPE_CATEGORY, category.id, 1, 2000)
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("20.00")

    def test_category_used_when_product_rule_does_not_cover(self, db_session, product, category):
        """A product rule needing 100 units leaves 10 units to the category rule."""
        _discount(db_session, SCOPE_PRODUCT, product.id, 100, 500)
        _discount(db_session, SCOPE_CATEGORY, category.id, 1, 1000)
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("10.00")

    def test_general_scope_is_last(self, db_session, product, category):
        _discount(db_session, SCOPE_GENERAL, None, 1, 300)
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("3.00")
        _discount(db_session, SCOPE_CATEGORY, category.id, 1, 700)
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("7.00")

    def test_org_specific_discount_preferred_within_scope(self, db_session, org, product):
        _discount(db_session, SCOPE_PRODUCT, product.id, 1, 1500)
        _discount(db_session, SCOPE_PRODUCT, product.id, 1, 500, org_id=org.id)
        assert pricing_service.calculate_volume_discount(product.id, 10, org.id) == Decimal("5.00")
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("15.00")

    def test_no_discount_is_zero(self, db_session, product):
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("0.00")

    def test_fixed_only_rule_reports_zero_percent(self, db_session, product):
        _discount(db_session, SCOPE_PRODUCT, product.id, 1, 0, fixed=250)
        assert pricing_service.calculate_volume_discount(product.id, 10) == Decimal("0.00")

    def test_uncategorized_product_skips_category_pass(self, db_session, make_product, category):
        loose = make_product("LOOSE-1", 1000, category_id=None)
        _discount(db_session, SCOPE_CATEGORY, category.id, 1, 2000)
        assert pricing_service.calculate_volume_discount(loose.id, 10) == Decimal("0.00")


class TestLinePricing:
    """price_line / price_lines over a snapshot."""

    def test_list_price_fallback_without_rules(self, db_session, org, product):
        snapshot = load_pricing_snapshot([product.id], org.id)
        [line] = pricing_service.price_lines(snapshot, org.id, [RequestedLine(product.id, 12)])
        assert line.base_price_cents == 5000
        assert line.unit_price_cents == 5000
        assert line.line_total_cents == 60000

    def test_percentage_discount_applied_to_tier_price(self, db_session, org, product):
        _price(db_session, product.id, 10, 4000)
        _discount(db_session, SCOPE_PRODUCT, product.id, 10, 1000)
        snapshot = load_pricing_snapshot([product.id], org.id)
        line = pricing_service.price_line(snapshot, org.id, RequestedLine(product.id, 10))
        assert line.base_price_cents == 4000
        assert line.unit_price_cents == 3600
        assert line.discount.discount_bps == 1000
        assert line.line_total_cents == 36000

    def test_discount_rounds_half_up_to_cent(self, db_session, org, make_product):
        odd = make_product("ODD-1", 999)
        _discount(db_session, SCOPE_PRODUCT, odd.id, 1, 250)  # 2.5% of 9.99 = 0.24975
        snapshot = load_pricing_snapshot([odd.id], org.id)
        line = pricing_service.price_line(snapshot, org.id, RequestedLine(odd.id, 1))
        assert line.unit_price_cents == 974  # 974.025 -> 974

    def test_fixed_discount_subtracted_and_clamped(self, db_session, org, make_product):
        cheap = make_product("CHEAP-1", 300)
        pricey = make_product("PRICEY-1", 5000)
        _discount(db_session, SCOPE_PRODUCT, cheap.id, 1, 0, fixed=500)
        _discount(db_session, SCOPE_PRODUCT, pricey.id, 1, 0, fixed=500)
        snapshot = load_pricing_snapshot([cheap.id, pricey.id], org.id)
        lines = pricing_service.price_lines(
            snapshot, org.id, [RequestedLine(cheap.id, 2), RequestedLine(pricey.id, 2)]
        )
        assert lines[0].unit_price_cents == 0
        assert lines[1].unit_price_cents == 4500

    def test_lines_keep_caller_order(self, db_session, org, make_product):
        a = make_product("A-1", 100)
        b = make_product("B-1", 200)
        snapshot = load_pricing_snapshot([a.id, b.id], org.id)
        lines = pricing_service.price_lines(
            snapshot, org.id, [RequestedLine(b.id, 1), RequestedLine(a.id, 1), RequestedLine(b.id, 3)]
        )
        assert [(l.product_id, l.quantity) for l in lines] == [(b.id, 1), (a.id, 1), (b.id, 3)]

    def test_missing_product_fails_whole_batch(self, db_session, org, product):
        snapshot = load_pricing_snapshot([product.id, 424242], org.id)
        with pytest.raises(NotFoundError) as exc:
            pricing_service.price_lines(
                snapshot, org.id, [RequestedLine(product.id, 1), RequestedLine(424242, 1)]
            )
        assert exc.value.details["missing_product_ids"] == [424242]

    def test_inactive_product_rejected(self, db_session, org, make_product):
        retired = make_product("OLD-1", 100, is_active=False)
        snapshot = load_pricing_snapshot([retired.id], org.id)
        with pytest.raises(BusinessRuleError):
            pricing_service.price_lines(snapshot, org.id, [RequestedLine(retired.id, 1)])

    def test_empty_and_non_positive_lines_rejected(self, db_session, org, product):
        snapshot = load_pricing_snapshot([product.id], org.id)
        with pytest.raises(ValidationError):
            pricing_service.price_lines(snapshot, org.id, [])
        with pytest.raises(ValidationError):
            pricing_service.price_lines(snapshot, org.id, [RequestedLine(product.id, 0)])
