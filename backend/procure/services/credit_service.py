# Overview: Credit term ledger (consume/release) and credit term administration.

from __future__ import annotations

from flask import current_app

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CreditLedgerEntry, CreditTerm, Organization
from ..models.credit import LEDGER_ENTRY_CONSUME, LEDGER_ENTRY_RELEASE
from ..validation import ModelValidationPolicy, enforce_rules_credit_term, validate_payload
from .concurrency import lock_for_update, run_with_retry, unit_of_work


CREDIT_TERM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "payment_days", "credit_limit_cents", "terms", "is_active"}),
    required_on_create=frozenset({"name"}),
)


def _load_term(term_id: int, *, for_update: bool = False) -> CreditTerm:
    query = db.session.query(CreditTerm).filter(
        CreditTerm.id == term_id,
        CreditTerm.is_deleted.is_(False),
    )
    if for_update:
        query = lock_for_update(query)
    term = query.one_or_none()
    if term is None:
        raise NotFoundError("Credit term", term_id)
    return term


def _resolve_term(term_or_id) -> CreditTerm:
    if isinstance(term_or_id, CreditTerm):
        return term_or_id
    return _load_term(term_or_id, for_update=True)


# =============================================================================
# Ledger operations (run inside the caller's unit of work)
# =============================================================================

def use_credit(
    term_or_id,
    amount_cents: int,
    *,
    purchase_order_id: int | None = None,
    note: str | None = None,
) -> CreditLedgerEntry:
    """
    Consume credit: used + amount must stay within the limit.

    Does not commit. The term row is re-read under lock when an id is
    passed; the version_id check at flush catches any concurrent writer.
    On failure nothing is mutated.
    """
    if amount_cents is None or amount_cents < 0:
        raise ValidationError("Credit amount must be >= 0", details={"amount_cents": amount_cents})

    term = _resolve_term(term_or_id)
    if not term.is_active:
        raise BusinessRuleError(
            f"Credit term {term.id} is inactive",
            details={"credit_term_id": term.id},
        )

    used = term.used_credit_cents or 0
    if term.credit_limit_cents is not None and used + amount_cents > term.credit_limit_cents:
        raise BusinessRuleError(
            "Credit limit exceeded",
            details={
                "credit_term_id": term.id,
                "credit_limit_cents": term.credit_limit_cents,
                "used_credit_cents": used,
                "requested_cents": amount_cents,
                "available_cents": term.credit_limit_cents - used,
            },
        )

    term.used_credit_cents = used + amount_cents
    entry = CreditLedgerEntry(
        credit_term_id=term.id,
        purchase_order_id=purchase_order_id,
        entry_type=LEDGER_ENTRY_CONSUME,
        amount_cents=amount_cents,
        used_after_cents=term.used_credit_cents,
        note=note,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def release_credit(
    term_or_id,
    amount_cents: int,
    *,
    purchase_order_id: int | None = None,
    note: str | None = None,
) -> CreditLedgerEntry:
    """Give credit back; used never drops below zero. Does not commit."""
    if amount_cents is None or amount_cents < 0:
        raise ValidationError("Credit amount must be >= 0", details={"amount_cents": amount_cents})

    term = _resolve_term(term_or_id)
    used = term.used_credit_cents or 0
    released = min(used, amount_cents)
    term.used_credit_cents = used - released

    entry = CreditLedgerEntry(
        credit_term_id=term.id,
        purchase_order_id=purchase_order_id,
        entry_type=LEDGER_ENTRY_RELEASE,
        amount_cents=-released,
        used_after_cents=term.used_credit_cents,
        note=note,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def adjust_credit_usage(term_id: int, amount_cents: int, note: str | None = None) -> CreditTerm:
    """Administrative adjustment: positive consumes, negative releases."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if amount_cents == 0:
        raise ValidationError("amount_cents must be non-zero")

    def _op() -> CreditTerm:
        with unit_of_work():
            term = _load_term(term_id, for_update=True)
            if amount_cents > 0:
                use_credit(term, amount_cents, note=note or "Manual adjustment")
            else:
                release_credit(term, -amount_cents, note=note or "Manual adjustment")
        current_app.logger.info(
            "Credit term %s adjusted by %s cents (used now %s)",
            term.id, amount_cents, term.used_credit_cents,
        )
        return term

    return run_with_retry(_op)


def list_ledger_entries(term_id: int) -> list[CreditLedgerEntry]:
    _load_term(term_id)
    return (
        db.session.query(CreditLedgerEntry)
        .filter(CreditLedgerEntry.credit_term_id == term_id)
        .order_by(CreditLedgerEntry.id.asc())
        .all()
    )


# =============================================================================
# Credit term administration
# =============================================================================

def create_credit_term(org_id: int, data: dict) -> CreditTerm:
    if db.session.get(Organization, org_id) is None:
        raise NotFoundError("Organization", org_id)

    patch = validate_payload(model=CreditTerm, payload=data, policy=CREDIT_TERM_POLICY, partial=False)
    enforce_rules_credit_term(patch)

    with unit_of_work():
        term = CreditTerm(org_id=org_id, used_credit_cents=0, **patch)
        db.session.add(term)

    current_app.logger.info("Created credit term %s for organization %s", term.id, org_id)
    return term


def get_credit_term(term_id: int) -> CreditTerm:
    return _load_term(term_id)


def list_credit_terms(org_id: int, is_active: bool | None = None) -> list[CreditTerm]:
    query = db.session.query(CreditTerm).filter(
        CreditTerm.org_id == org_id,
        CreditTerm.is_deleted.is_(False),
    )
    if is_active is not None:
        query = query.filter(CreditTerm.is_active.is_(is_active))
    return query.order_by(CreditTerm.payment_days.asc(), CreditTerm.id.asc()).all()


def update_credit_term(term_id: int, data: dict) -> CreditTerm:
    patch = validate_payload(model=CreditTerm, payload=data, policy=CREDIT_TERM_POLICY, partial=True)
    enforce_rules_credit_term(patch)

    def _op() -> CreditTerm:
        with unit_of_work():
            term = _load_term(term_id, for_update=True)
            new_limit = patch.get("credit_limit_cents", term.credit_limit_cents)
            if new_limit is not None and new_limit < (term.used_credit_cents or 0):
                raise BusinessRuleError(
                    "Credit limit cannot be lower than the credit already used",
                    details={"credit_limit_cents": new_limit, "used_credit_cents": term.used_credit_cents},
                )
            for key, value in patch.items():
                setattr(term, key, value)
        return term

    return run_with_retry(_op)


def delete_credit_term(term_id: int) -> bool:
    with unit_of_work():
        term = _load_term(term_id, for_update=True)
        term.is_deleted = True
        term.is_active = False
    current_app.logger.info("Credit term %s deleted", term_id)
    return True
