# Overview: Administration of wholesale price tiers and volume discount rules.

"""
Pricing rule administration.

Rules are soft-deleted (is_deleted) and never removed: purchase order lines
priced from them must stay explainable. Scope and product/organization
bindings are fixed at creation; updates touch quantities, amounts, the
validity window and the active flag.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Organization, Product, VolumeDiscount, WholesalePrice
from ..models.pricing import SCOPE_CATEGORY, SCOPE_GENERAL, SCOPE_PRODUCT
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_volume_discount,
    enforce_rules_wholesale_price,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry, unit_of_work


_RULE_FIELDS = {"min_quantity", "max_quantity", "is_active", "start_date", "end_date"}

WHOLESALE_PRICE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_RULE_FIELDS | {"product_id", "org_id", "price_cents"}),
    required_on_create=frozenset({"product_id", "min_quantity", "price_cents"}),
)
WHOLESALE_PRICE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_RULE_FIELDS | {"price_cents"}),
)

VOLUME_DISCOUNT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(
        _RULE_FIELDS | {"scope_type", "scope_id", "org_id", "discount_bps", "fixed_discount_cents"}
    ),
    required_on_create=frozenset({"scope_type", "min_quantity"}),
)
VOLUME_DISCOUNT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_RULE_FIELDS | {"discount_bps", "fixed_discount_cents"}),
)

_RULE_COLUMNS = (
    "min_quantity", "max_quantity", "price_cents", "discount_bps", "fixed_discount_cents",
    "start_date", "end_date", "is_active",
)


def _snapshot(rule) -> dict:
    return {key: getattr(rule, key) for key in _RULE_COLUMNS if hasattr(rule, key)}


def _require(model, entity: str, entity_id) -> None:
    if entity_id is not None and db.session.get(model, entity_id) is None:
        raise NotFoundError(entity, entity_id)


def _percent_to_bps(value) -> int:
    """'5', 5, 5.5 -> 500, 500, 550. Sub-basis-point precision is rejected."""
    if isinstance(value, bool):
        raise ValidationError("discount_percent must be a number")
    try:
        percent = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("discount_percent must be a number")
    if percent < 0 or percent > 100:
        raise ValidationError("discount_percent must be between 0 and 100")
    bps = percent * 100
    if bps != bps.to_integral_value():
        raise ValidationError("discount_percent supports at most two decimal places")
    return int(bps)


def _normalize_discount_payload(data: dict | None, *, creating: bool) -> dict:
    """Translate API-facing keys (product_id, category_id, discount_percent) to columns."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(data)

    if "discount_percent" in payload:
        if "discount_bps" in payload:
            raise ValidationError("Send either discount_percent or discount_bps, not both")
        raw = payload.pop("discount_percent")
        payload["discount_bps"] = 0 if raw is None else _percent_to_bps(raw)

    product_id = payload.pop("product_id", None)
    category_id = payload.pop("category_id", None)
    if not creating:
        if product_id is not None or category_id is not None:
            raise ValidationError("Discount scope cannot be changed; create a new rule instead")
        return payload

    if "scope_type" not in payload:
        if product_id is not None and category_id is not None:
            raise ValidationError("A discount applies to a product or a category, not both")
        if product_id is not None:
            payload["scope_type"], payload["scope_id"] = SCOPE_PRODUCT, product_id
        elif category_id is not None:
            payload["scope_type"], payload["scope_id"] = SCOPE_CATEGORY, category_id
        else:
            payload["scope_type"], payload["scope_id"] = SCOPE_GENERAL, None
    elif product_id is not None or category_id is not None:
        raise ValidationError("Send either scope_type/scope_id or product_id/category_id")

    return payload


def _check_scope(patch: dict) -> None:
    scope_type = patch.get("scope_type")
    scope_id = patch.get("scope_id")
    if scope_type == SCOPE_GENERAL:
        if scope_id is not None:
            raise ValidationError("A general discount cannot have a scope_id")
    elif scope_type == SCOPE_PRODUCT:
        if scope_id is None:
            raise ValidationError("A product discount needs a product")
        _require(Product, "Product", scope_id)
    elif scope_type == SCOPE_CATEGORY:
        if scope_id is None:
            raise ValidationError("A category discount needs a category")
        _require(Category, "Category", scope_id)
    else:
        raise ValidationError(f"Invalid discount scope: {scope_type}")


# =============================================================================
# Wholesale prices
# =============================================================================

def _load_wholesale_price(rule_id: int, *, for_update: bool = False) -> WholesalePrice:
    query = db.session.query(WholesalePrice).filter(
        WholesalePrice.id == rule_id,
        WholesalePrice.is_deleted.is_(False),
    )
    if for_update:
        query = lock_for_update(query)
    rule = query.one_or_none()
    if rule is None:
        raise NotFoundError("Wholesale price", rule_id)
    return rule


def create_wholesale_price(data: dict) -> WholesalePrice:
    patch = validate_payload(
        model=WholesalePrice, payload=data, policy=WHOLESALE_PRICE_CREATE_POLICY, partial=False
    )
    enforce_rules_wholesale_price(patch)
    _require(Product, "Product", patch["product_id"])
    _require(Organization, "Organization", patch.get("org_id"))

    with unit_of_work():
        rule = WholesalePrice(**patch)
        db.session.add(rule)

    current_app.logger.info(
        "Created wholesale price %s for product %s (org %s)", rule.id, rule.product_id, rule.org_id
    )
    return rule


def update_wholesale_price(rule_id: int, data: dict) -> WholesalePrice:
    patch = validate_payload(
        model=WholesalePrice, payload=data, policy=WHOLESALE_PRICE_UPDATE_POLICY, partial=True
    )

    def _op() -> WholesalePrice:
        with unit_of_work():
            rule = _load_wholesale_price(rule_id, for_update=True)
            merged = {**_snapshot(rule), **patch}
            enforce_rules_wholesale_price(merged)
            for key, value in patch.items():
                setattr(rule, key, value)
        return rule

    return run_with_retry(_op)


def delete_wholesale_price(rule_id: int) -> bool:
    with unit_of_work():
        rule = _load_wholesale_price(rule_id, for_update=True)
        rule.is_deleted = True
        rule.is_active = False
    current_app.logger.info("Wholesale price %s deleted", rule_id)
    return True


def list_product_wholesale_prices(product_id: int, org_id: int | None = None) -> list[WholesalePrice]:
    """Active tiers for a product; with org_id the org's tiers plus general ones."""
    _require(Product, "Product", product_id)
    query = db.session.query(WholesalePrice).filter(
        WholesalePrice.product_id == product_id,
        WholesalePrice.is_active.is_(True),
        WholesalePrice.is_deleted.is_(False),
    )
    if org_id is None:
        query = query.filter(WholesalePrice.org_id.is_(None))
    else:
        query = query.filter(or_(WholesalePrice.org_id == org_id, WholesalePrice.org_id.is_(None)))
    return query.order_by(WholesalePrice.min_quantity.asc(), WholesalePrice.id.asc()).all()


# =============================================================================
# Volume discounts
# =============================================================================

def _load_volume_discount(rule_id: int, *, for_update: bool = False) -> VolumeDiscount:
    query = db.session.query(VolumeDiscount).filter(
        VolumeDiscount.id == rule_id,
        VolumeDiscount.is_deleted.is_(False),
    )
    if for_update:
        query = lock_for_update(query)
    rule = query.one_or_none()
    if rule is None:
        raise NotFoundError("Volume discount", rule_id)
    return rule


def create_volume_discount(data: dict) -> VolumeDiscount:
    payload = _normalize_discount_payload(data, creating=True)
    patch = validate_payload(
        model=VolumeDiscount, payload=payload, policy=VOLUME_DISCOUNT_CREATE_POLICY, partial=False
    )
    patch.setdefault("discount_bps", 0)
    enforce_rules_volume_discount(patch)
    _check_scope(patch)
    _require(Organization, "Organization", patch.get("org_id"))

    with unit_of_work():
        rule = VolumeDiscount(**patch)
        db.session.add(rule)

    current_app.logger.info(
        "Created volume discount %s (%s %s, org %s)", rule.id, rule.scope_type, rule.scope_id, rule.org_id
    )
    return rule


def update_volume_discount(rule_id: int, data: dict) -> VolumeDiscount:
    payload = _normalize_discount_payload(data, creating=False)
    patch = validate_payload(
        model=VolumeDiscount, payload=payload, policy=VOLUME_DISCOUNT_UPDATE_POLICY, partial=True
    )

    def _op() -> VolumeDiscount:
        with unit_of_work():
            rule = _load_volume_discount(rule_id, for_update=True)
            merged = {**_snapshot(rule), **patch}
            enforce_rules_volume_discount(merged)
            for key, value in patch.items():
                setattr(rule, key, value)
        return rule

    return run_with_retry(_op)


def delete_volume_discount(rule_id: int) -> bool:
    with unit_of_work():
        rule = _load_volume_discount(rule_id, for_update=True)
        rule.is_deleted = True
        rule.is_active = False
    current_app.logger.info("Volume discount %s deleted", rule_id)
    return True


def list_volume_discounts(
    product_id: int | None = None,
    category_id: int | None = None,
    org_id: int | None = None,
) -> list[VolumeDiscount]:
    """Active discount rules, optionally narrowed to one product or category scope."""
    if product_id is not None and category_id is not None:
        raise ValidationError("Filter by product_id or category_id, not both")

    query = db.session.query(VolumeDiscount).filter(
        VolumeDiscount.is_active.is_(True),
        VolumeDiscount.is_deleted.is_(False),
    )
    if product_id is not None:
        query = query.filter(VolumeDiscount.scope_type == SCOPE_PRODUCT, VolumeDiscount.scope_id == product_id)
    elif category_id is not None:
        query = query.filter(VolumeDiscount.scope_type == SCOPE_CATEGORY, VolumeDiscount.scope_id == category_id)

    if org_id is None:
        query = query.filter(VolumeDiscount.org_id.is_(None))
    else:
        query = query.filter(or_(VolumeDiscount.org_id == org_id, VolumeDiscount.org_id.is_(None)))

    return query.order_by(VolumeDiscount.min_quantity.asc(), VolumeDiscount.id.asc()).all()
