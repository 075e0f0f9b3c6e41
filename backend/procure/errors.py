# Overview: Error taxonomy shared by services and routes.

"""
Procurement error kinds.

Each kind maps to one stable category so callers can tell a retryable
conflict from input they must fix or a policy they violated:

- ValidationError    -> malformed input (400)
- NotFoundError      -> missing organization / buyer / product / term / order (404)
- BusinessRuleError  -> illegal transition, credit limit, duplicate registration (422)
- ConcurrencyError   -> lost optimistic-lock race, safe to retry (409)
"""

from __future__ import annotations


class ProcurementError(Exception):
    """Base class for domain errors raised by the service layer."""

    code = "procurement_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(ProcurementError):
    code = "validation_error"
    http_status = 400


class NotFoundError(ProcurementError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id=None, details: dict | None = None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        details = dict(details or {})
        details.setdefault("entity", entity)
        if entity_id is not None:
            details.setdefault("id", entity_id)
        super().__init__(message, details)


class BusinessRuleError(ProcurementError):
    code = "business_rule_violation"
    http_status = 422


class ConcurrencyError(ProcurementError):
    code = "concurrency_conflict"
    http_status = 409
    retryable = True
