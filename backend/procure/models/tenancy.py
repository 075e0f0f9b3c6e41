from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Organization(db.Model):
    """
    Buying organization (B2B customer).

    Every wholesale price, volume discount, credit term and purchase order
    is either scoped to one organization or general (org_id NULL).
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    tax_number = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "tax_number": self.tax_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


BUYER_STATUS_PENDING = "PENDING"
BUYER_STATUS_ACTIVE = "ACTIVE"
BUYER_STATUS_SUSPENDED = "SUSPENDED"
BUYER_STATUSES = {BUYER_STATUS_PENDING, BUYER_STATUS_ACTIVE, BUYER_STATUS_SUSPENDED}


class Buyer(db.Model):
    """
    Authorized purchaser registered for an organization.

    A person (email) is registered at most once per organization.
    Only ACTIVE buyers may place purchase orders.
    """
    __tablename__ = "buyers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "email", name="uq_buyers_org_email"),
        db.Index("ix_buyers_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    employee_id = db.Column(db.String(64), nullable=True)
    department = db.Column(db.String(128), nullable=True)
    job_title = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=BUYER_STATUS_PENDING, index=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("buyers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_approved(self) -> bool:
        return self.status == BUYER_STATUS_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "full_name": self.full_name,
            "email": self.email,
            "employee_id": self.employee_id,
            "department": self.department,
            "job_title": self.job_title,
            "status": self.status,
            "is_approved": self.is_approved,
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_user_id": self.approved_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
