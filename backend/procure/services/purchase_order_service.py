# Overview: Purchase order workflows (create, submit, approve, reject, cancel) and queries.

"""
Purchase order workflow coordinator.

Every workflow runs as one unit of work: the order header, its lines, the
credit term and its ledger entry are committed together or not at all.

APPROVAL RACE:
Two approvals of the same order must not both succeed. The order and the
credit term are loaded FOR UPDATE and the status is re-checked inside the
transaction; both rows carry version_id, so a concurrent writer makes the
flush fail with StaleDataError. The retry re-reads state and then fails on
the status guard; exhausted retries surface as ConcurrencyError.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import BusinessRuleError, ConcurrencyError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CreditTerm, Organization, PurchaseOrder
from ..models.orders import PO_STATUS_APPROVED, VALID_PO_STATUSES
from ..time_utils import parse_iso_datetime, to_naive_utc, utcnow
from .buyer_service import require_active_buyer
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .credit_service import use_credit
from .pricing_service import RequestedLine, check_requested_lines, price_line
from .reference_data import load_pricing_snapshot
from .sequence_service import next_purchase_order_number


# =============================================================================
# Input normalization
# =============================================================================

def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def _requested_lines(lines) -> list[RequestedLine]:
    if not lines:
        raise ValidationError("A purchase order needs at least one line")
    if not isinstance(lines, (list, tuple)):
        raise ValidationError("lines must be a list")

    requested = []
    for index, raw in enumerate(lines, start=1):
        if isinstance(raw, RequestedLine):
            line = raw
        elif isinstance(raw, dict):
            if raw.get("product_id") is None:
                raise ValidationError(f"Line {index}: product_id is required")
            if raw.get("quantity") is None:
                raise ValidationError(f"Line {index}: quantity is required")
            notes = raw.get("notes")
            line = RequestedLine(
                product_id=_as_int(raw["product_id"], f"Line {index} product_id"),
                quantity=_as_int(raw["quantity"], f"Line {index} quantity"),
                notes=str(notes).strip() if notes is not None else None,
            )
        else:
            raise ValidationError(f"Line {index}: expected an object")

        if line.quantity <= 0:
            raise ValidationError(
                f"Line {index}: quantity must be positive",
                details={"line": index, "quantity": line.quantity},
            )
        requested.append(line)
    return requested


def _delivery_date(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return to_naive_utc(value)
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError("expected_delivery_date must be an ISO-8601 datetime")


def _check_status_filter(status: str | None) -> None:
    if status is not None and status not in VALID_PO_STATUSES:
        raise ValidationError(f"Invalid purchase order status: {status}")


# =============================================================================
# Loading
# =============================================================================

def _load_order(po_id: int, *, for_update: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.id == po_id)
    if for_update:
        query = lock_for_update(query)
    po = query.one_or_none()
    if po is None:
        raise NotFoundError("Purchase order", po_id)
    return po


def _check_version(po: PurchaseOrder, expected_version: int | None) -> None:
    if expected_version is not None and po.version_id != expected_version:
        raise ConcurrencyError(
            f"Purchase order {po.po_number} was modified by another request",
            details={"expected_version": expected_version, "current_version": po.version_id},
        )


def _load_credit_term_for(org_id: int, credit_term_id: int, *, for_update: bool = False) -> CreditTerm:
    query = db.session.query(CreditTerm).filter(
        CreditTerm.id == credit_term_id,
        CreditTerm.is_deleted.is_(False),
    )
    if for_update:
        query = lock_for_update(query)
    term = query.one_or_none()
    if term is None or term.org_id != org_id:
        raise NotFoundError("Credit term", credit_term_id, details={"org_id": org_id})
    return term


# =============================================================================
# Creation
# =============================================================================

def create_purchase_order(
    *,
    org_id: int,
    buyer_id: int,
    lines,
    credit_term_id: int | None = None,
    notes: str | None = None,
    expected_delivery_date=None,
    now: datetime | None = None,
) -> PurchaseOrder:
    """
    Price the requested lines and persist a DRAFT purchase order.

    Line order follows the request. Missing organization, buyer, credit
    term or product raises NotFoundError; nothing is written on failure.
    """
    org_id = _as_int(org_id, "organization_id")
    buyer_id = _as_int(buyer_id, "buyer_id")
    if credit_term_id is not None:
        credit_term_id = _as_int(credit_term_id, "credit_term_id")
    requested = _requested_lines(lines)
    delivery = _delivery_date(expected_delivery_date)
    now = to_naive_utc(now) if now is not None else utcnow()

    config = current_app.config
    tax_rate_bps = config.get("PO_TAX_RATE_BPS", 2000)
    prefix = config.get("PO_NUMBER_PREFIX", "PO")

    def _op() -> PurchaseOrder:
        with unit_of_work():
            org = db.session.get(Organization, org_id)
            if org is None:
                raise NotFoundError("Organization", org_id)
            if not org.is_active:
                raise BusinessRuleError(f"Organization {org_id} is inactive")

            require_active_buyer(org_id, buyer_id)

            if credit_term_id is not None:
                term = _load_credit_term_for(org_id, credit_term_id)
                if not term.is_active:
                    raise BusinessRuleError(
                        f"Credit term {credit_term_id} is inactive",
                        details={"credit_term_id": credit_term_id},
                    )

            snapshot = load_pricing_snapshot([line.product_id for line in requested], org_id, now)
            check_requested_lines(snapshot, requested)

            po = PurchaseOrder(
                org_id=org_id,
                buyer_id=buyer_id,
                credit_term_id=credit_term_id,
                po_number=next_purchase_order_number(prefix=prefix, now=now),
                notes=notes,
                expected_delivery_date=delivery,
            )
            db.session.add(po)
            po.set_tax_rate(tax_rate_bps)
            try:
                db.session.flush()
            except IntegrityError as exc:
                if "po_number" not in str(exc.orig):
                    raise
                raise ConcurrencyError(
                    f"Purchase order number {po.po_number} is already taken; retry the request",
                    details={"po_number": po.po_number},
                ) from exc

            for line in requested:
                priced = price_line(snapshot, org_id, line)
                po.add_line(
                    product_id=priced.product_id,
                    quantity=priced.quantity,
                    base_price_cents=priced.base_price_cents,
                    unit_price_cents=priced.unit_price_cents,
                    discount_bps=priced.discount.discount_bps,
                    fixed_discount_cents=priced.discount.fixed_discount_cents,
                    notes=priced.notes,
                )
                db.session.flush()

        current_app.logger.info(
            "Created purchase order %s for organization %s (%d lines, total %s cents)",
            po.po_number, org_id, len(po.lines), po.total_cents,
        )
        return po

    # ConcurrencyError here is a duplicate po_number from a concurrent allocation
    return run_with_retry(_op, retry_on=(OperationalError, StaleDataError, ConcurrencyError))


# =============================================================================
# Transitions
# =============================================================================

def _transition(po_id: int, action: str, mutate, *, expected_version: int | None = None) -> bool:
    if expected_version is not None:
        expected_version = _as_int(expected_version, "expected_version")

    def _op() -> bool:
        with unit_of_work():
            po = _load_order(po_id, for_update=True)
            _check_version(po, expected_version)
            mutate(po)
            db.session.flush()
            po_number, status = po.po_number, po.status
        current_app.logger.info("Purchase order %s %s (status %s)", po_number, action, status)
        return True

    return run_with_retry(_op)


def submit_purchase_order(po_id: int, *, expected_version: int | None = None) -> bool:
    return _transition(po_id, "submitted", lambda po: po.submit(), expected_version=expected_version)


def approve_purchase_order(po_id: int, approver_id: int, *, expected_version: int | None = None) -> bool:
    """
    Approve a SUBMITTED order, consuming credit when a term is attached.

    The credit consumption and the status change commit together; a
    credit-limit breach leaves the order SUBMITTED and the term unchanged.
    """
    if not approver_id:
        raise ValidationError("approver_id is required")
    approver_id = _as_int(approver_id, "approver_id")

    def _approve(po: PurchaseOrder) -> None:
        po.ensure_can_transition(PO_STATUS_APPROVED)
        if po.credit_term_id is not None:
            term = _load_credit_term_for(po.org_id, po.credit_term_id, for_update=True)
            use_credit(
                term,
                po.total_cents,
                purchase_order_id=po.id,
                note=f"Approval of {po.po_number}",
            )
        po.approve(approver_id)

    return _transition(po_id, "approved", _approve, expected_version=expected_version)


def reject_purchase_order(po_id: int, reason: str, *, expected_version: int | None = None) -> bool:
    if reason is None or not str(reason).strip():
        raise ValidationError("Rejection reason is required")
    return _transition(po_id, "rejected", lambda po: po.reject(reason), expected_version=expected_version)


def cancel_purchase_order(po_id: int, *, expected_version: int | None = None) -> bool:
    # Credit is consumed only on approval and APPROVED is terminal: nothing to release
    return _transition(po_id, "cancelled", lambda po: po.cancel(), expected_version=expected_version)


# =============================================================================
# Queries
# =============================================================================

def get_purchase_order(po_id: int) -> PurchaseOrder:
    return _load_order(po_id)


def get_purchase_order_by_number(po_number: str) -> PurchaseOrder:
    po = db.session.query(PurchaseOrder).filter(PurchaseOrder.po_number == po_number).one_or_none()
    if po is None:
        raise NotFoundError("Purchase order", po_number)
    return po


def list_organization_purchase_orders(org_id: int, status: str | None = None) -> list[PurchaseOrder]:
    _check_status_filter(status)
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.org_id == org_id)
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def list_buyer_purchase_orders(buyer_id: int, status: str | None = None) -> list[PurchaseOrder]:
    _check_status_filter(status)
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.buyer_id == buyer_id)
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()
