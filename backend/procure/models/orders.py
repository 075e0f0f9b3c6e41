"""
Purchase order aggregate.

STATE MACHINE:
    DRAFT -> SUBMITTED -> APPROVED
                       -> REJECTED
    DRAFT | SUBMITTED  -> CANCELLED

    APPROVED, REJECTED and CANCELLED are terminal.

RULES:
1. Lines and totals change only while DRAFT (totals are frozen afterwards)
2. Every mutation goes through a method on PurchaseOrder
3. Orders are never deleted, only transitioned
4. Line prices are snapshots taken at order time
"""

from __future__ import annotations

from ..errors import BusinessRuleError, ValidationError
from ..extensions import db
from ..money import apply_bps, bps_to_percent
from ..time_utils import to_utc_z, utcnow


PO_STATUS_DRAFT = "DRAFT"
PO_STATUS_SUBMITTED = "SUBMITTED"
PO_STATUS_APPROVED = "APPROVED"
PO_STATUS_REJECTED = "REJECTED"
PO_STATUS_CANCELLED = "CANCELLED"

VALID_PO_STATUSES = {
    PO_STATUS_DRAFT,
    PO_STATUS_SUBMITTED,
    PO_STATUS_APPROVED,
    PO_STATUS_REJECTED,
    PO_STATUS_CANCELLED,
}
TERMINAL_PO_STATUSES = {PO_STATUS_APPROVED, PO_STATUS_REJECTED, PO_STATUS_CANCELLED}

_TRANSITIONS = {
    PO_STATUS_DRAFT: {PO_STATUS_SUBMITTED, PO_STATUS_CANCELLED},
    PO_STATUS_SUBMITTED: {PO_STATUS_APPROVED, PO_STATUS_REJECTED, PO_STATUS_CANCELLED},
}


def can_transition(from_status: str, to_status: str) -> bool:
    if from_status not in VALID_PO_STATUSES or to_status not in VALID_PO_STATUSES:
        raise ValidationError(f"Invalid purchase order status transition {from_status} -> {to_status}")
    return to_status in _TRANSITIONS.get(from_status, set())


class PurchaseOrder(db.Model):
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        db.Index("ix_purchase_orders_org_status_created", "org_id", "status", "created_at"),
        db.CheckConstraint("subtotal_cents >= 0", name="ck_purchase_orders_subtotal"),
        db.CheckConstraint("total_cents >= 0", name="ck_purchase_orders_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("buyers.id"), nullable=False, index=True)
    credit_term_id = db.Column(db.Integer, db.ForeignKey("credit_terms.id"), nullable=True, index=True)

    # Human-readable number, e.g. "PO-20261019-000001"
    po_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PO_STATUS_DRAFT, index=True)

    # Totals (cents); tax rate in basis points
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("purchase_orders", lazy=True))
    buyer = db.relationship("Buyer", backref=db.backref("purchase_orders", lazy=True))
    credit_term = db.relationship("CreditTerm")
    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        order_by="PurchaseOrderLine.line_number",
        cascade="all, delete-orphan",
        lazy="select",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        kwargs.setdefault("status", PO_STATUS_DRAFT)
        for field in ("subtotal_cents", "tax_rate_bps", "tax_cents", "shipping_cents", "discount_cents", "total_cents"):
            kwargs.setdefault(field, 0)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PO_STATUSES

    def ensure_can_transition(self, to_status: str) -> None:
        if not can_transition(self.status, to_status):
            raise BusinessRuleError(
                f"Cannot move purchase order {self.po_number} from {self.status} to {to_status}",
                details={"from_status": self.status, "to_status": to_status},
            )

    def _require_draft(self, action: str) -> None:
        if self.status != PO_STATUS_DRAFT:
            raise BusinessRuleError(
                f"Can only {action} DRAFT purchase orders. {self.po_number} is {self.status}",
                details={"status": self.status},
            )

    # ------------------------------------------------------------------
    # Lines and totals (DRAFT only)
    # ------------------------------------------------------------------

    def add_line(
        self,
        *,
        product_id: int,
        quantity: int,
        base_price_cents: int,
        unit_price_cents: int,
        discount_bps: int = 0,
        fixed_discount_cents: int | None = None,
        notes: str | None = None,
    ) -> "PurchaseOrderLine":
        self._require_draft("add lines to")
        if quantity is None or quantity <= 0:
            raise ValidationError("Line quantity must be positive", details={"product_id": product_id})
        if unit_price_cents < 0:
            raise ValidationError("Unit price cannot be negative", details={"product_id": product_id})

        line = PurchaseOrderLine(
            line_number=len(self.lines) + 1,
            product_id=product_id,
            quantity=quantity,
            base_price_cents=base_price_cents,
            unit_price_cents=unit_price_cents,
            discount_bps=discount_bps,
            fixed_discount_cents=fixed_discount_cents,
            line_total_cents=unit_price_cents * quantity,
            notes=notes,
        )
        self.lines.append(line)
        self.recalculate_totals()
        return line

    def set_tax_rate(self, tax_rate_bps: int) -> None:
        self._require_draft("change tax on")
        if tax_rate_bps < 0:
            raise ValidationError("Tax rate cannot be negative")
        self.tax_rate_bps = tax_rate_bps
        self.recalculate_totals()

    def set_shipping(self, shipping_cents: int) -> None:
        self._require_draft("change shipping on")
        if shipping_cents < 0:
            raise ValidationError("Shipping cannot be negative")
        self.shipping_cents = shipping_cents
        self.recalculate_totals()

    def set_order_discount(self, discount_cents: int) -> None:
        self._require_draft("change the discount on")
        if discount_cents < 0:
            raise ValidationError("Order discount cannot be negative")
        previous = self.discount_cents
        self.discount_cents = discount_cents
        try:
            self.recalculate_totals()
        except ValidationError:
            self.discount_cents = previous
            raise

    def recalculate_totals(self) -> None:
        """subtotal = sum(lines); tax = subtotal x rate; total = subtotal + tax + shipping - discount."""
        self._require_draft("recalculate totals of")
        subtotal = sum(line.line_total_cents for line in self.lines)
        tax = apply_bps(subtotal, self.tax_rate_bps or 0)
        total = subtotal + tax + (self.shipping_cents or 0) - (self.discount_cents or 0)
        if total < 0:
            raise ValidationError(
                "Order total cannot be negative",
                details={"subtotal_cents": subtotal, "discount_cents": self.discount_cents},
            )
        self.subtotal_cents = subtotal
        self.tax_cents = tax
        self.total_cents = total

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self) -> None:
        self.ensure_can_transition(PO_STATUS_SUBMITTED)
        if not self.lines:
            raise BusinessRuleError(f"Cannot submit purchase order {self.po_number} with no lines")
        self.status = PO_STATUS_SUBMITTED
        self.submitted_at = utcnow()

    def approve(self, approver_id: int) -> None:
        """Credit, when attached, must already be consumed by the caller in the same transaction."""
        if not approver_id:
            raise ValidationError("approver_id is required")
        self.ensure_can_transition(PO_STATUS_APPROVED)
        self.status = PO_STATUS_APPROVED
        self.approved_at = utcnow()
        self.approved_by_user_id = approver_id

    def reject(self, reason: str) -> None:
        if reason is None or not str(reason).strip():
            raise ValidationError("Rejection reason is required")
        self.ensure_can_transition(PO_STATUS_REJECTED)
        self.status = PO_STATUS_REJECTED
        self.rejected_at = utcnow()
        self.rejection_reason = str(reason).strip()

    def cancel(self) -> None:
        self.ensure_can_transition(PO_STATUS_CANCELLED)
        self.status = PO_STATUS_CANCELLED
        self.cancelled_at = utcnow()

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "buyer_id": self.buyer_id,
            "credit_term_id": self.credit_term_id,
            "po_number": self.po_number,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_user_id": self.approved_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseOrderLine(db.Model):
    """
    Priced line on a purchase order.

    base_price_cents: tier price before volume discount
    unit_price_cents: price actually charged per unit (after discount)
    """
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "line_number", name="uq_po_lines_order_line_number"),
        db.CheckConstraint("quantity > 0", name="ck_po_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    base_price_cents = db.Column(db.Integer, nullable=False)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    fixed_discount_cents = db.Column(db.Integer, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "base_price_cents": self.base_price_cents,
            "discount_bps": self.discount_bps,
            "discount_percent": str(bps_to_percent(self.discount_bps or 0)),
            "fixed_discount_cents": self.fixed_discount_cents,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
