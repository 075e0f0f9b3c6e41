from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import BPS_PER_UNIT
from .time_utils import parse_iso_datetime, to_naive_utc


# Maximum money amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required when creating
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        # bool is a subclass of int; reject it explicitly
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return to_naive_utc(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict | None,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate + normalize an incoming dict against the model's columns and
    the policy allowlist. Returns a patch holding only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: update semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"missing": missing})

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# =============================================================================
# Rules not captured by column metadata
# =============================================================================

def _check_amount(patch: dict, key: str) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_quantity_range(merged: dict, *, min_floor: int) -> None:
    min_qty = merged.get("min_quantity")
    max_qty = merged.get("max_quantity")
    if min_qty is None or min_qty < min_floor:
        raise ValidationError(f"min_quantity must be >= {min_floor}")
    if max_qty is not None and max_qty < min_qty:
        raise ValidationError(
            "max_quantity cannot be less than min_quantity",
            details={"min_quantity": min_qty, "max_quantity": max_qty},
        )


def enforce_validity_window(merged: dict) -> None:
    start, end = merged.get("start_date"), merged.get("end_date")
    if start is not None and end is not None and end <= start:
        raise ValidationError("end_date must be after start_date")


def enforce_rules_wholesale_price(merged: dict) -> None:
    """`merged` is the rule state after applying the patch."""
    enforce_quantity_range(merged, min_floor=0)
    enforce_validity_window(merged)
    if merged.get("price_cents") is None:
        raise ValidationError("price_cents is required")
    _check_amount(merged, "price_cents")


def enforce_rules_volume_discount(merged: dict) -> None:
    enforce_quantity_range(merged, min_floor=1)
    enforce_validity_window(merged)

    bps = merged.get("discount_bps") or 0
    if bps < 0 or bps > BPS_PER_UNIT:
        raise ValidationError(f"discount_bps must be between 0 and {BPS_PER_UNIT}")
    _check_amount(merged, "fixed_discount_cents")

    fixed = merged.get("fixed_discount_cents") or 0
    if bps > 0 and fixed > 0:
        raise ValidationError("A discount cannot use both a percentage and a fixed amount")
    if bps == 0 and fixed == 0:
        raise ValidationError("A discount needs a percentage or a fixed amount")


def enforce_rules_credit_term(merged: dict) -> None:
    if merged.get("payment_days") is not None and merged["payment_days"] < 0:
        raise ValidationError("payment_days must be >= 0")
    _check_amount(merged, "credit_limit_cents")
