# Overview: Tiered price and volume discount resolution over a pricing snapshot.

"""
Pricing resolution.

PRICE: org-specific tiers first, then general tiers, then the catalog list
price. Within a pass the first tier (min_quantity descending) whose range
covers the quantity wins.

DISCOUNT: product scope, then category scope, then general scope; each
scope uses the same org-then-general passes. Product specificity beats
discount magnitude: a matching 5% product rule hides a 20% category rule.

A tier carrying a percentage applies it (unit * (1 - pct/100)); a tier
carrying only a fixed amount subtracts it per unit, clamped at zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..models.pricing import CategoryScope, GeneralScope, ProductScope
from ..money import bps_to_percent, discounted_cents
from .reference_data import (
    CatalogItem,
    DiscountTier,
    PriceTier,
    PricingSnapshot,
    load_pricing_snapshot,
)


def _two_pass(tiers: Sequence, quantity: int, org_id: int | None):
    if org_id is not None:
        for tier in tiers:
            if tier.org_id == org_id and tier.covers(quantity):
                return tier
    for tier in tiers:
        if tier.org_id is None and tier.covers(quantity):
            return tier
    return None


# =============================================================================
# Resolvers (pure)
# =============================================================================

def find_price_tier(
    snapshot: PricingSnapshot, product_id: int, quantity: int, org_id: int | None
) -> PriceTier | None:
    return _two_pass(snapshot.price_tiers(product_id), quantity, org_id)


def resolve_unit_price(
    snapshot: PricingSnapshot, item: CatalogItem, quantity: int, org_id: int | None
) -> int:
    tier = find_price_tier(snapshot, item.product_id, quantity, org_id)
    if tier is not None:
        return tier.price_cents
    return item.list_price_cents


def find_discount_tier(
    snapshot: PricingSnapshot,
    product_id: int,
    category_id: int | None,
    quantity: int,
    org_id: int | None,
) -> DiscountTier | None:
    scopes = [ProductScope(product_id)]
    if category_id is not None:
        scopes.append(CategoryScope(category_id))
    scopes.append(GeneralScope())

    for scope in scopes:
        tier = _two_pass(snapshot.discount_tiers(scope), quantity, org_id)
        if tier is not None:
            return tier
    return None


@dataclass(frozen=True)
class AppliedDiscount:
    rule_id: int | None = None
    discount_bps: int = 0
    fixed_discount_cents: int | None = None

    @property
    def percent(self) -> Decimal:
        return bps_to_percent(self.discount_bps)

    def apply(self, unit_price_cents: int) -> int:
        if self.discount_bps > 0:
            return discounted_cents(unit_price_cents, self.discount_bps)
        if self.fixed_discount_cents:
            return max(0, unit_price_cents - self.fixed_discount_cents)
        return unit_price_cents


NO_DISCOUNT = AppliedDiscount()


def resolve_discount(
    snapshot: PricingSnapshot,
    product_id: int,
    category_id: int | None,
    quantity: int,
    org_id: int | None,
) -> AppliedDiscount:
    tier = find_discount_tier(snapshot, product_id, category_id, quantity, org_id)
    if tier is None:
        return NO_DISCOUNT
    if tier.discount_bps > 0:
        return AppliedDiscount(rule_id=tier.rule_id, discount_bps=tier.discount_bps)
    return AppliedDiscount(rule_id=tier.rule_id, fixed_discount_cents=tier.fixed_discount_cents)


# =============================================================================
# Line pricing
# =============================================================================

@dataclass(frozen=True)
class RequestedLine:
    product_id: int
    quantity: int
    notes: str | None = None


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    base_price_cents: int
    unit_price_cents: int
    discount: AppliedDiscount
    notes: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


def price_line(snapshot: PricingSnapshot, org_id: int | None, line: RequestedLine) -> PricedLine:
    item = snapshot.catalog.get(line.product_id)
    if item is None:
        raise NotFoundError("Product", line.product_id)

    tier_price = resolve_unit_price(snapshot, item, line.quantity, org_id)
    discount = resolve_discount(snapshot, item.product_id, item.category_id, line.quantity, org_id)
    return PricedLine(
        product_id=item.product_id,
        quantity=line.quantity,
        base_price_cents=tier_price,
        unit_price_cents=discount.apply(tier_price),
        discount=discount,
        notes=line.notes,
    )


def check_requested_lines(snapshot: PricingSnapshot, lines: Sequence[RequestedLine]) -> None:
    """
    Validate the whole request against the snapshot before any line is
    priced, so one bad id fails the batch.
    """
    if not lines:
        raise ValidationError("A purchase order needs at least one line")

    for line in lines:
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError(
                "Line quantity must be positive",
                details={"product_id": line.product_id, "quantity": line.quantity},
            )

    missing = sorted({line.product_id for line in lines if line.product_id not in snapshot.catalog})
    if missing:
        raise NotFoundError("Product", missing[0], details={"missing_product_ids": missing})

    inactive = sorted({line.product_id for line in lines if not snapshot.catalog[line.product_id].is_active})
    if inactive:
        raise BusinessRuleError(
            "Inactive products cannot be ordered",
            details={"inactive_product_ids": inactive},
        )


def price_lines(
    snapshot: PricingSnapshot, org_id: int | None, lines: Iterable[RequestedLine]
) -> list[PricedLine]:
    """Price every line in caller order."""
    lines = list(lines)
    check_requested_lines(snapshot, lines)
    return [price_line(snapshot, org_id, line) for line in lines]


# =============================================================================
# Single-product lookups
# =============================================================================

def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be positive")
    return quantity


def get_wholesale_price(
    product_id: int, quantity: int, org_id: int | None = None, now: datetime | None = None
) -> int | None:
    """
    Wholesale tier price in cents, or None when no tier covers `quantity`.

    Does not fall back to the catalog list price.
    """
    quantity = _validate_quantity(quantity)
    snapshot = load_pricing_snapshot([product_id], org_id, now)
    if product_id not in snapshot.catalog:
        raise NotFoundError("Product", product_id)
    tier = find_price_tier(snapshot, product_id, quantity, org_id)
    return tier.price_cents if tier is not None else None


def calculate_volume_discount(
    product_id: int, quantity: int, org_id: int | None = None, now: datetime | None = None
) -> Decimal:
    """Discount percent (Decimal, two places); fixed-amount-only rules report 0."""
    quantity = _validate_quantity(quantity)
    snapshot = load_pricing_snapshot([product_id], org_id, now)
    item = snapshot.catalog.get(product_id)
    if item is None:
        raise NotFoundError("Product", product_id)
    return resolve_discount(snapshot, product_id, item.category_id, quantity, org_id).percent
