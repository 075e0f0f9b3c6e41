# Overview: Atomic allocation of human-readable document numbers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import period_key, utcnow

PURCHASE_ORDER_DOCUMENT_TYPE = "PURCHASE_ORDER"


def _current_number(document_type: str, period: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period_key=period)
        .scalar()
    )
    return current - 1


def allocate_sequence_number(document_type: str, period: str) -> int:
    """
    Atomically allocate the next number for (document_type, period).

    Runs inside the caller's transaction: a rollback of the caller releases
    the number again. The bump is a single UPDATE, so concurrent callers
    serialize on the row instead of counting existing documents.
    """
    if not document_type:
        raise ValidationError("document_type is required")
    if not period:
        raise ValidationError("period is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period_key == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current_number(document_type, period)

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(document_type=document_type, period_key=period, next_number=2))
        return 1
    except IntegrityError:
        # Another transaction created the period row first
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _current_number(document_type, period)


def next_purchase_order_number(*, prefix: str = "PO", now: datetime | None = None, pad: int = 6) -> str:
    """PO-{yyyyMMdd}-{000001}; the sequence restarts every UTC day."""
    day = period_key(now or utcnow())
    number = allocate_sequence_number(PURCHASE_ORDER_DOCUMENT_TYPE, day)
    return f"{prefix}-{day}-{number:0{pad}d}"
