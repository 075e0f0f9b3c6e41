from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..extensions import db
from ..money import bps_to_percent
from ..time_utils import to_utc_z


# =============================================================================
# DISCOUNT SCOPE (tagged variant)
# =============================================================================

SCOPE_PRODUCT = "PRODUCT"
SCOPE_CATEGORY = "CATEGORY"
SCOPE_GENERAL = "GENERAL"
SCOPE_TYPES = {SCOPE_PRODUCT, SCOPE_CATEGORY, SCOPE_GENERAL}


@dataclass(frozen=True)
class ProductScope:
    product_id: int


@dataclass(frozen=True)
class CategoryScope:
    category_id: int


@dataclass(frozen=True)
class GeneralScope:
    pass


ScopeKey = Union[ProductScope, CategoryScope, GeneralScope]


def make_scope_key(scope_type: str, scope_id: int | None) -> ScopeKey:
    if scope_type == SCOPE_PRODUCT:
        return ProductScope(scope_id)
    if scope_type == SCOPE_CATEGORY:
        return CategoryScope(scope_id)
    if scope_type == SCOPE_GENERAL:
        return GeneralScope()
    raise ValueError(f"Unknown discount scope {scope_type!r}")


# =============================================================================
# WHOLESALE PRICE TIERS
# =============================================================================

class WholesalePrice(db.Model):
    """
    Quantity-tiered unit price for a product.

    org_id NULL means the tier is general (applies to every organization).
    Rules are soft-deleted (is_deleted) because historical orders were
    priced from them.
    """
    __tablename__ = "wholesale_prices"
    __table_args__ = (
        db.CheckConstraint("min_quantity >= 0", name="ck_wholesale_prices_min_qty"),
        db.CheckConstraint(
            "max_quantity IS NULL OR max_quantity >= min_quantity",
            name="ck_wholesale_prices_qty_range",
        ),
        db.CheckConstraint("price_cents >= 0", name="ck_wholesale_prices_price"),
        db.Index("ix_wholesale_prices_product_org", "product_id", "org_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    min_quantity = db.Column(db.Integer, nullable=False, default=1)
    max_quantity = db.Column(db.Integer, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("wholesale_prices", lazy=True))
    organization = db.relationship("Organization")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "org_id": self.org_id,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


# =============================================================================
# VOLUME DISCOUNTS
# =============================================================================

class VolumeDiscount(db.Model):
    """
    Quantity-tiered discount applying to one product, one category, or
    everything (GENERAL).

    scope_type/scope_id together form the tagged scope; scope_id is NULL
    exactly when scope_type is GENERAL. discount_bps is basis points of the
    unit price (500 = 5%); fixed_discount_cents is a per-unit amount.
    """
    __tablename__ = "volume_discounts"
    __table_args__ = (
        db.CheckConstraint("min_quantity >= 1", name="ck_volume_discounts_min_qty"),
        db.CheckConstraint(
            "max_quantity IS NULL OR max_quantity >= min_quantity",
            name="ck_volume_discounts_qty_range",
        ),
        db.CheckConstraint(
            "discount_bps >= 0 AND discount_bps <= 10000",
            name="ck_volume_discounts_bps_range",
        ),
        db.CheckConstraint(
            "(scope_type = 'GENERAL' AND scope_id IS NULL) OR "
            "(scope_type IN ('PRODUCT', 'CATEGORY') AND scope_id IS NOT NULL)",
            name="ck_volume_discounts_scope",
        ),
        db.Index("ix_volume_discounts_scope", "scope_type", "scope_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    scope_type = db.Column(db.String(16), nullable=False)  # PRODUCT, CATEGORY, GENERAL
    scope_id = db.Column(db.Integer, nullable=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    min_quantity = db.Column(db.Integer, nullable=False, default=1)
    max_quantity = db.Column(db.Integer, nullable=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    fixed_discount_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def scope_key(self) -> ScopeKey:
        return make_scope_key(self.scope_type, self.scope_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "product_id": self.scope_id if self.scope_type == SCOPE_PRODUCT else None,
            "category_id": self.scope_id if self.scope_type == SCOPE_CATEGORY else None,
            "org_id": self.org_id,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "discount_bps": self.discount_bps,
            "discount_percent": str(bps_to_percent(self.discount_bps)),
            "fixed_discount_cents": self.fixed_discount_cents,
            "is_active": self.is_active,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
