# Overview: Transaction scope, row locking and retry helpers for workflows.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    compare-and-swap at flush time is what detects lost updates.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work():
    """
    One all-or-nothing transaction around a block of session work.

    Commits when the block finishes; on any exception (including
    KeyboardInterrupt and generator cancellation) rolls back and re-raises
    the original error unchanged. The commit is the final step, so an
    interruption can only land before it.
    """
    try:
        yield db.session
        db.session.commit()
    except BaseException:
        db.session.rollback()
        raise


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float = 0.05,
    retry_on: tuple[type[BaseException], ...] = (OperationalError, StaleDataError),
):
    """
    Execute a transactional operation, retrying on concurrency failures.

    `func` must open its own unit_of_work so each attempt re-reads state.
    A StaleDataError (lost optimistic-lock race) that survives every attempt
    surfaces as ConcurrencyError; other retryable errors are re-raised as-is.
    """
    if attempts is None:
        attempts = current_app.config.get("WORKFLOW_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    raise ConcurrencyError(
                        "Record was modified concurrently; retry the request",
                        details={"attempts": attempts},
                    ) from exc
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
