# Overview: Pytest coverage for the pricing reference data snapshot.

from datetime import datetime, timedelta

import pytest

from procure.models import VolumeDiscount, WholesalePrice
from procure.models.pricing import (
    SCOPE_CATEGORY,
    SCOPE_GENERAL,
    SCOPE_PRODUCT,
    CategoryScope,
    GeneralScope,
    ProductScope,
    make_scope_key,
)
from procure.services.reference_data import load_pricing_snapshot


class TestPricingSnapshot:

    def test_catalog_batch_contains_only_found_products(self, db_session, org, product):
        snapshot = load_pricing_snapshot([product.id, 777777], org.id)
        assert set(snapshot.catalog) == {product.id}
        item = snapshot.catalog[product.id]
        assert item.list_price_cents == 5000
        assert item.category_id == product.category_id

    def test_tiers_sorted_by_min_quantity_descending(self, db_session, org, product):
        for min_qty, price in [(10, 90), (1, 100), (50, 80)]:
            db_session.add(WholesalePrice(product_id=product.id, min_quantity=min_qty, price_cents=price))
        db_session.commit()

        tiers = load_pricing_snapshot([product.id], org.id).price_tiers(product.id)
        assert [t.min_quantity for t in tiers] == [50, 10, 1]

    def test_org_filter(self, db_session, org, other_org, product):
        db_session.add_all([
            WholesalePrice(product_id=product.id, org_id=org.id, min_quantity=1, price_cents=1),
            WholesalePrice(product_id=product.id, org_id=other_org.id, min_quantity=1, price_cents=2),
            WholesalePrice(product_id=product.id, org_id=None, min_quantity=1, price_cents=3),
        ])
        db_session.commit()

        for_org = load_pricing_snapshot([product.id], org.id).price_tiers(product.id)
        assert sorted(t.price_cents for t in for_org) == [1, 3]

        general_only = load_pricing_snapshot([product.id], None).price_tiers(product.id)
        assert [t.price_cents for t in general_only] == [3]

    def test_validity_window_is_inclusive(self, db_session, org, product):
        now = datetime(2026, 10, 19, 12, 0, 0)
        db_session.add_all([
            WholesalePrice(product_id=product.id, min_quantity=1, price_cents=1, start_date=now),
            WholesalePrice(product_id=product.id, min_quantity=2, price_cents=2, end_date=now),
            WholesalePrice(product_id=product.id, min_quantity=3, price_cents=3, start_date=now + timedelta(seconds=1)),
            WholesalePrice(product_id=product.id, min_quantity=4, price_cents=4, end_date=now - timedelta(seconds=1)),
        ])
        db_session.commit()

        tiers = load_pricing_snapshot([product.id], org.id, now=now).price_tiers(product.id)
        assert sorted(t.price_cents for t in tiers) == [1, 2]

    def test_discounts_indexed_by_tagged_scope(self, db_session, org, product, category):
        db_session.add_all([
            VolumeDiscount(scope_type=SCOPE_PRODUCT, scope_id=product.id, min_quantity=1, discount_bps=500),
            VolumeDiscount(scope_type=SCOPE_CATEGORY, scope_id=category.id, min_quantity=1, discount_bps=2000),
            VolumeDiscount(scope_type=SCOPE_GENERAL, scope_id=None, min_quantity=1, discount_bps=100),
            # unrelated product: not loaded
            VolumeDiscount(scope_type=SCOPE_PRODUCT, scope_id=product.id + 1000, min_quantity=1, discount_bps=900),
        ])
        db_session.commit()

        snapshot = load_pricing_snapshot([product.id], org.id)
        assert [t.discount_bps for t in snapshot.discount_tiers(ProductScope(product.id))] == [500]
        assert [t.discount_bps for t in snapshot.discount_tiers(CategoryScope(category.id))] == [2000]
        assert [t.discount_bps for t in snapshot.discount_tiers(GeneralScope())] == [100]
        assert len(snapshot.discounts_by_scope) == 3

    def test_product_and_category_with_same_id_do_not_collide(self, db_session, org, product, category):
        """Tagged keys keep Product(n) and Category(n) apart."""
        db_session.add_all([
            VolumeDiscount(scope_type=SCOPE_PRODUCT, scope_id=product.id, min_quantity=1, discount_bps=500),
            VolumeDiscount(scope_type=SCOPE_CATEGORY, scope_id=category.id, min_quantity=1, discount_bps=2000),
        ])
        db_session.commit()

        snapshot = load_pricing_snapshot([product.id], org.id)
        assert ProductScope(category.id) != CategoryScope(category.id)
        assert snapshot.discount_tiers(CategoryScope(category.id))[0].discount_bps == 2000

    def test_rule_scope_key(self):
        assert VolumeDiscount(scope_type=SCOPE_PRODUCT, scope_id=7).scope_key == ProductScope(7)
        assert VolumeDiscount(scope_type=SCOPE_CATEGORY, scope_id=7).scope_key == CategoryScope(7)
        assert VolumeDiscount(scope_type=SCOPE_GENERAL, scope_id=None).scope_key == GeneralScope()
        with pytest.raises(ValueError):
            make_scope_key("BRAND", 7)

    def test_snapshot_is_read_only(self, db_session, org, product):
        snapshot = load_pricing_snapshot([product.id], org.id)
        with pytest.raises(TypeError):
            snapshot.catalog[product.id] = None
        with pytest.raises(AttributeError):
            snapshot.org_id = 42

    def test_empty_request(self, db_session, org):
        snapshot = load_pricing_snapshot([], org.id)
        assert dict(snapshot.catalog) == {}
        assert dict(snapshot.prices_by_product) == {}
