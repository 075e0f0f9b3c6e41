# Overview: Bulk loading of pricing reference data into a read-only snapshot.

"""
Reference data snapshot for one pricing call.

Loads the catalog batch, wholesale price tiers and volume discount tiers
once (one query each), then indexes them for key lookups:

    prices_by_product:  product_id -> tiers, min_quantity descending
    discounts_by_scope: ScopeKey   -> tiers, min_quantity descending

Only rules that are active, not deleted, inside their validity window and
scoped to the requested organization or to no organization are included.
The snapshot is immutable; resolvers never touch the database.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, VolumeDiscount, WholesalePrice
from ..models.pricing import (
    SCOPE_CATEGORY,
    SCOPE_GENERAL,
    SCOPE_PRODUCT,
    ScopeKey,
)
from ..time_utils import to_naive_utc, utcnow, within_window


@dataclass(frozen=True)
class CatalogItem:
    product_id: int
    sku: str
    category_id: int | None
    list_price_cents: int
    is_active: bool


@dataclass(frozen=True)
class PriceTier:
    rule_id: int
    org_id: int | None
    min_quantity: int
    max_quantity: int | None
    price_cents: int

    def covers(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity


@dataclass(frozen=True)
class DiscountTier:
    rule_id: int
    org_id: int | None
    min_quantity: int
    max_quantity: int | None
    discount_bps: int
    fixed_discount_cents: int | None

    def covers(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity


@dataclass(frozen=True)
class PricingSnapshot:
    org_id: int | None
    as_of: datetime
    catalog: Mapping[int, CatalogItem]
    prices_by_product: Mapping[int, tuple[PriceTier, ...]]
    discounts_by_scope: Mapping[ScopeKey, tuple[DiscountTier, ...]]

    def price_tiers(self, product_id: int) -> tuple[PriceTier, ...]:
        return self.prices_by_product.get(product_id, ())

    def discount_tiers(self, scope: ScopeKey) -> tuple[DiscountTier, ...]:
        return self.discounts_by_scope.get(scope, ())


def _org_filter(column, org_id: int | None):
    if org_id is None:
        return column.is_(None)
    return or_(column == org_id, column.is_(None))


def _freeze(grouped: dict) -> Mapping:
    # sorted() is stable: equal min_quantity keeps load (id) order
    return MappingProxyType({
        key: tuple(sorted(tiers, key=lambda t: t.min_quantity, reverse=True))
        for key, tiers in grouped.items()
    })


def _load_catalog(product_ids: list[int]) -> dict[int, CatalogItem]:
    if not product_ids:
        return {}
    rows = db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    return {
        p.id: CatalogItem(
            product_id=p.id,
            sku=p.sku,
            category_id=p.category_id,
            list_price_cents=p.price_cents,
            is_active=bool(p.is_active),
        )
        for p in rows
    }


def _load_price_tiers(product_ids: list[int], org_id: int | None, now: datetime) -> dict:
    grouped: dict[int, list[PriceTier]] = defaultdict(list)
    if not product_ids:
        return grouped

    rules = (
        db.session.query(WholesalePrice)
        .filter(
            WholesalePrice.product_id.in_(product_ids),
            WholesalePrice.is_active.is_(True),
            WholesalePrice.is_deleted.is_(False),
            _org_filter(WholesalePrice.org_id, org_id),
        )
        .order_by(WholesalePrice.id.asc())
        .all()
    )
    for rule in rules:
        if not within_window(now, rule.start_date, rule.end_date):
            continue
        grouped[rule.product_id].append(
            PriceTier(
                rule_id=rule.id,
                org_id=rule.org_id,
                min_quantity=rule.min_quantity,
                max_quantity=rule.max_quantity,
                price_cents=rule.price_cents,
            )
        )
    return grouped


def _load_discount_tiers(
    product_ids: list[int],
    category_ids: list[int],
    org_id: int | None,
    now: datetime,
) -> dict:
    grouped: dict[ScopeKey, list[DiscountTier]] = defaultdict(list)

    scope_clauses = [VolumeDiscount.scope_type == SCOPE_GENERAL]
    if product_ids:
        scope_clauses.append(
            (VolumeDiscount.scope_type == SCOPE_PRODUCT) & VolumeDiscount.scope_id.in_(product_ids)
        )
    if category_ids:
        scope_clauses.append(
            (VolumeDiscount.scope_type == SCOPE_CATEGORY) & VolumeDiscount.scope_id.in_(category_ids)
        )

    rules = (
        db.session.query(VolumeDiscount)
        .filter(
            or_(*scope_clauses),
            VolumeDiscount.is_active.is_(True),
            VolumeDiscount.is_deleted.is_(False),
            _org_filter(VolumeDiscount.org_id, org_id),
        )
        .order_by(VolumeDiscount.id.asc())
        .all()
    )
    for rule in rules:
        if not within_window(now, rule.start_date, rule.end_date):
            continue
        grouped[rule.scope_key].append(
            DiscountTier(
                rule_id=rule.id,
                org_id=rule.org_id,
                min_quantity=rule.min_quantity,
                max_quantity=rule.max_quantity,
                discount_bps=rule.discount_bps or 0,
                fixed_discount_cents=rule.fixed_discount_cents,
            )
        )
    return grouped


def load_pricing_snapshot(
    product_ids: Iterable[int],
    org_id: int | None,
    now: datetime | None = None,
) -> PricingSnapshot:
    """
    Load everything needed to price `product_ids` for `org_id` at `now`.

    Missing products are simply absent from `catalog`; callers decide
    whether that is an error.
    """
    now = to_naive_utc(now) if now is not None else utcnow()
    ids = sorted({int(pid) for pid in product_ids})

    catalog = _load_catalog(ids)
    category_ids = sorted({item.category_id for item in catalog.values() if item.category_id is not None})

    return PricingSnapshot(
        org_id=org_id,
        as_of=now,
        catalog=MappingProxyType(catalog),
        prices_by_product=_freeze(_load_price_tiers(ids, org_id, now)),
        discounts_by_scope=_freeze(_load_discount_tiers(ids, category_ids, org_id, now)),
    )
