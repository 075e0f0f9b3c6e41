from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CreditTerm(db.Model):
    """
    Organization-level line of credit.

    Invariants (also enforced by CHECK constraints):
    - used_credit_cents >= 0
    - used_credit_cents <= credit_limit_cents whenever a limit is set

    credit_limit_cents NULL means unlimited. version_id makes concurrent
    consumption a compare-and-swap on the row.
    """
    __tablename__ = "credit_terms"
    __table_args__ = (
        db.CheckConstraint("used_credit_cents >= 0", name="ck_credit_terms_used_non_negative"),
        db.CheckConstraint(
            "credit_limit_cents IS NULL OR used_credit_cents <= credit_limit_cents",
            name="ck_credit_terms_used_within_limit",
        ),
        db.CheckConstraint("payment_days >= 0", name="ck_credit_terms_payment_days"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    payment_days = db.Column(db.Integer, nullable=False, default=30)
    credit_limit_cents = db.Column(db.Integer, nullable=True)
    used_credit_cents = db.Column(db.Integer, nullable=False, default=0)
    terms = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("credit_terms", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_credit_cents(self) -> int | None:
        if self.credit_limit_cents is None:
            return None
        return self.credit_limit_cents - (self.used_credit_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "payment_days": self.payment_days,
            "credit_limit_cents": self.credit_limit_cents,
            "used_credit_cents": self.used_credit_cents,
            "available_credit_cents": self.available_credit_cents,
            "terms": self.terms,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


LEDGER_ENTRY_CONSUME = "CONSUME"
LEDGER_ENTRY_RELEASE = "RELEASE"


class CreditLedgerEntry(db.Model):
    """
    Append-only history of credit consumption and release.

    amount_cents is signed: positive for CONSUME, negative for RELEASE.
    Written in the same transaction as the CreditTerm mutation it records.
    """
    __tablename__ = "credit_ledger_entries"
    __table_args__ = (
        db.Index("ix_credit_ledger_term_occurred", "credit_term_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credit_term_id = db.Column(db.Integer, db.ForeignKey("credit_terms.id"), nullable=False, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(16), nullable=False)  # CONSUME, RELEASE
    amount_cents = db.Column(db.Integer, nullable=False)
    used_after_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    credit_term = db.relationship("CreditTerm", backref=db.backref("ledger_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_term_id": self.credit_term_id,
            "purchase_order_id": self.purchase_order_id,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
            "used_after_cents": self.used_after_cents,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
