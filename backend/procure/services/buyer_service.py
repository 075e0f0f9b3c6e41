# Overview: B2B buyer registration and approval.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Buyer, Organization
from ..models.tenancy import BUYER_STATUS_ACTIVE, BUYER_STATUS_PENDING, BUYER_STATUS_SUSPENDED, BUYER_STATUSES
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import lock_for_update, unit_of_work


BUYER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"full_name", "email", "employee_id", "department", "job_title"}),
    required_on_create=frozenset({"full_name", "email"}),
)


def _normalize_email(email: str) -> str:
    email = email.strip().lower()
    if "@" not in email:
        raise ValidationError("email must be a valid email address")
    return email


def _load_buyer(buyer_id: int, *, for_update: bool = False) -> Buyer:
    query = db.session.query(Buyer).filter(Buyer.id == buyer_id, Buyer.is_deleted.is_(False))
    if for_update:
        query = lock_for_update(query)
    buyer = query.one_or_none()
    if buyer is None:
        raise NotFoundError("Buyer", buyer_id)
    return buyer


def _email_taken(org_id: int, email: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Buyer.id).filter(
        Buyer.org_id == org_id,
        func.lower(Buyer.email) == email,
    )
    if exclude_id is not None:
        query = query.filter(Buyer.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def register_buyer(org_id: int, data: dict) -> Buyer:
    """Register a purchaser for an organization; starts PENDING."""
    org = db.session.get(Organization, org_id)
    if org is None:
        raise NotFoundError("Organization", org_id)
    if not org.is_active:
        raise BusinessRuleError(f"Organization {org_id} is inactive")

    patch = validate_payload(model=Buyer, payload=data, policy=BUYER_POLICY, partial=False)
    patch["email"] = _normalize_email(patch["email"])

    if _email_taken(org_id, patch["email"]):
        raise BusinessRuleError(
            "Duplicate B2B registration: this person is already registered for the organization",
            details={"org_id": org_id, "email": patch["email"]},
        )

    with unit_of_work():
        buyer = Buyer(org_id=org_id, status=BUYER_STATUS_PENDING, **patch)
        db.session.add(buyer)

    current_app.logger.info("Registered buyer %s for organization %s", buyer.id, org_id)
    return buyer


def approve_buyer(buyer_id: int, approver_id: int) -> Buyer:
    if not approver_id:
        raise ValidationError("approver_id is required")

    with unit_of_work():
        buyer = _load_buyer(buyer_id, for_update=True)
        if buyer.status == BUYER_STATUS_ACTIVE:
            raise BusinessRuleError(f"Buyer {buyer_id} is already approved")
        buyer.status = BUYER_STATUS_ACTIVE
        buyer.approved_at = utcnow()
        buyer.approved_by_user_id = approver_id

    current_app.logger.info("Buyer %s approved by user %s", buyer_id, approver_id)
    return buyer


def get_buyer(buyer_id: int) -> Buyer:
    return _load_buyer(buyer_id)


def list_buyers(org_id: int, status: str | None = None) -> list[Buyer]:
    query = db.session.query(Buyer).filter(Buyer.org_id == org_id, Buyer.is_deleted.is_(False))
    if status is not None:
        if status not in BUYER_STATUSES:
            raise ValidationError(f"Invalid buyer status: {status}")
        query = query.filter(Buyer.status == status)
    return query.order_by(Buyer.full_name.asc(), Buyer.id.asc()).all()


def update_buyer(buyer_id: int, data: dict) -> Buyer:
    patch = validate_payload(model=Buyer, payload=data, policy=BUYER_POLICY, partial=True)

    with unit_of_work():
        buyer = _load_buyer(buyer_id, for_update=True)
        if "email" in patch:
            patch["email"] = _normalize_email(patch["email"])
            if _email_taken(buyer.org_id, patch["email"], exclude_id=buyer.id):
                raise BusinessRuleError(
                    "Duplicate B2B registration: this person is already registered for the organization",
                    details={"org_id": buyer.org_id, "email": patch["email"]},
                )
        for key, value in patch.items():
            setattr(buyer, key, value)
    return buyer


def delete_buyer(buyer_id: int) -> bool:
    """
    Soft-delete a buyer. Existing purchase orders keep their buyer_id; the
    email stays reserved for the organization.
    """
    with unit_of_work():
        buyer = _load_buyer(buyer_id, for_update=True)
        buyer.is_deleted = True
        buyer.status = BUYER_STATUS_SUSPENDED
    current_app.logger.info("Buyer %s deleted", buyer_id)
    return True


def require_active_buyer(org_id: int, buyer_id: int) -> Buyer:
    """The buyer must exist, belong to `org_id` and be ACTIVE."""
    buyer = db.session.get(Buyer, buyer_id)
    if buyer is None or buyer.is_deleted or buyer.org_id != org_id:
        raise NotFoundError("Buyer", buyer_id, details={"org_id": org_id})
    if buyer.status != BUYER_STATUS_ACTIVE:
        raise BusinessRuleError(
            f"Buyer {buyer_id} is not approved to place orders",
            details={"status": buyer.status},
        )
    return buyer
