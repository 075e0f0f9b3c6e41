# Overview: Flask API routes for B2B procurement; parses input and returns JSON responses.

"""
B2B Procurement Routes

Thin JSON layer over the procurement services. Domain errors map to
stable statuses:
- ValidationError   400
- NotFoundError     404
- ConcurrencyError  409 (retryable)
- BusinessRuleError 422

Error body: {"error": message, "code": kind, "details": {...}}
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import ProcurementError, ValidationError
from ..services import (
    buyer_service,
    credit_service,
    pricing_service,
    purchase_order_service,
    rules_service,
)


b2b_bp = Blueprint("b2b", __name__, url_prefix="/api/b2b")


def _error_response(exc: ProcurementError):
    if exc.http_status >= 409:
        current_app.logger.warning("B2B request rejected (%s): %s", exc.code, exc.message)
    return jsonify(exc.to_dict()), exc.http_status


def _internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error", "code": "internal_error", "details": {}}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int_arg(name: str, *, required: bool = False):
    raw = request.args.get(name)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{name} query parameter is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes"}


# =============================================================================
# Buyers
# =============================================================================

@b2b_bp.post("/buyers")
def register_buyer_route():
    """
    Register a buyer for an organization.

    Request body:
    {
        "organization_id": 1,          // required
        "full_name": "Jane Buyer",     // required
        "email": "jane@example.com",   // required, unique per organization
        "employee_id": "...", "department": "...", "job_title": "..."
    }
    """
    try:
        data = dict(_json_body())
        org_id = data.pop("organization_id", None)
        if org_id is None:
            raise ValidationError("organization_id is required")
        buyer = buyer_service.register_buyer(org_id, data)
        return jsonify(buyer.to_dict()), 201
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("register buyer")


@b2b_bp.post("/buyers/<int:buyer_id>/approve")
def approve_buyer_route(buyer_id: int):
    try:
        data = _json_body()
        buyer = buyer_service.approve_buyer(buyer_id, data.get("approver_id"))
        return jsonify(buyer.to_dict()), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("approve buyer")


@b2b_bp.delete("/buyers/<int:buyer_id>")
def delete_buyer_route(buyer_id: int):
    try:
        buyer_service.delete_buyer(buyer_id)
        return jsonify({"deleted": True, "id": buyer_id}), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("delete buyer")


@b2b_bp.get("/organizations/<int:org_id>/buyers")
def list_buyers_route(org_id: int):
    try:
        buyers = buyer_service.list_buyers(org_id, status=request.args.get("status"))
        return jsonify({"items": [b.to_dict() for b in buyers], "count": len(buyers)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list buyers")


# =============================================================================
# Wholesale prices
# =============================================================================

@b2b_bp.post("/wholesale-prices")
def create_wholesale_price_route():
    try:
        rule = rules_service.create_wholesale_price(_json_body())
        return jsonify(rule.to_dict()), 201
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("create wholesale price")


@b2b_bp.get("/products/<int:product_id>/wholesale-prices")
def list_wholesale_prices_route(product_id: int):
    try:
        rules = rules_service.list_product_wholesale_prices(product_id, org_id=_int_arg("organization_id"))
        return jsonify({"items": [r.to_dict() for r in rules], "count": len(rules)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list wholesale prices")


@b2b_bp.get("/products/<int:product_id>/wholesale-price")
def get_wholesale_price_route(product_id: int):
    """
    Resolve the wholesale tier price for a quantity.

    Query: quantity (required), organization_id (optional)
    Returns: {"product_id", "quantity", "organization_id", "price_cents"}; price_cents is null
    when no tier covers the quantity.
    """
    try:
        quantity = _int_arg("quantity", required=True)
        org_id = _int_arg("organization_id")
        price = pricing_service.get_wholesale_price(product_id, quantity, org_id)
        return jsonify({
            "product_id": product_id,
            "quantity": quantity,
            "organization_id": org_id,
            "price_cents": price,
        })
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("resolve wholesale price")


@b2b_bp.put("/wholesale-prices/<int:rule_id>")
def update_wholesale_price_route(rule_id: int):
    try:
        rule = rules_service.update_wholesale_price(rule_id, _json_body())
        return jsonify(rule.to_dict()), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("update wholesale price")


@b2b_bp.delete("/wholesale-prices/<int:rule_id>")
def delete_wholesale_price_route(rule_id: int):
    try:
        rules_service.delete_wholesale_price(rule_id)
        return jsonify({"deleted": True, "id": rule_id}), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("delete wholesale price")


# =============================================================================
# Volume discounts
# =============================================================================

@b2b_bp.post("/volume-discounts")
def create_volume_discount_route():
    """
    Create a volume discount.

    Scope: "product_id" OR "category_id" OR neither (general).
    Amount: "discount_percent" (0-100, two decimals) OR "fixed_discount_cents".
    """
    try:
        rule = rules_service.create_volume_discount(_json_body())
        return jsonify(rule.to_dict()), 201
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("create volume discount")


@b2b_bp.get("/volume-discounts")
def list_volume_discounts_route():
    try:
        rules = rules_service.list_volume_discounts(
            product_id=_int_arg("product_id"),
            category_id=_int_arg("category_id"),
            org_id=_int_arg("organization_id"),
        )
        return jsonify({"items": [r.to_dict() for r in rules], "count": len(rules)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list volume discounts")


@b2b_bp.get("/products/<int:product_id>/volume-discount")
def get_volume_discount_route(product_id: int):
    try:
        quantity = _int_arg("quantity", required=True)
        org_id = _int_arg("organization_id")
        percent = pricing_service.calculate_volume_discount(product_id, quantity, org_id)
        return jsonify({
            "product_id": product_id,
            "quantity": quantity,
            "organization_id": org_id,
            "discount_percent": str(percent),
        })
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("calculate volume discount")


@b2b_bp.put("/volume-discounts/<int:rule_id>")
def update_volume_discount_route(rule_id: int):
    try:
        rule = rules_service.update_volume_discount(rule_id, _json_body())
        return jsonify(rule.to_dict()), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("update volume discount")


@b2b_bp.delete("/volume-discounts/<int:rule_id>")
def delete_volume_discount_route(rule_id: int):
    try:
        rules_service.delete_volume_discount(rule_id)
        return jsonify({"deleted": True, "id": rule_id}), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("delete volume discount")


# =============================================================================
# Credit terms
# =============================================================================

@b2b_bp.post("/credit-terms")
def create_credit_term_route():
    try:
        data = dict(_json_body())
        org_id = data.pop("organization_id", None)
        if org_id is None:
            raise ValidationError("organization_id is required")
        term = credit_service.create_credit_term(org_id, data)
        return jsonify(term.to_dict()), 201
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("create credit term")


@b2b_bp.get("/organizations/<int:org_id>/credit-terms")
def list_credit_terms_route(org_id: int):
    try:
        terms = credit_service.list_credit_terms(org_id, is_active=_bool_arg("is_active"))
        return jsonify({"items": [t.to_dict() for t in terms], "count": len(terms)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list credit terms")


@b2b_bp.post("/credit-terms/<int:term_id>/adjust")
def adjust_credit_route(term_id: int):
    """Body: {"amount_cents": int (positive consumes, negative releases), "note": str}"""
    try:
        data = _json_body()
        term = credit_service.adjust_credit_usage(term_id, data.get("amount_cents"), data.get("note"))
        return jsonify(term.to_dict()), 200
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("adjust credit usage")


@b2b_bp.get("/credit-terms/<int:term_id>/ledger")
def credit_ledger_route(term_id: int):
    try:
        entries = credit_service.list_ledger_entries(term_id)
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list credit ledger")


# =============================================================================
# Purchase orders
# =============================================================================

@b2b_bp.post("/purchase-orders")
def create_purchase_order_route():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "organization_id": 1,
        "buyer_id": 2,
        "credit_term_id": 3,                       // optional
        "lines": [{"product_id": 10, "quantity": 12, "notes": "..."}],
        "notes": "...",                            // optional
        "expected_delivery_date": "2026-11-01T00:00:00Z"  // optional
    }
    """
    try:
        data = _json_body()
        for field in ("organization_id", "buyer_id"):
            if data.get(field) is None:
                raise ValidationError(f"{field} is required")
        po = purchase_order_service.create_purchase_order(
            org_id=data["organization_id"],
            buyer_id=data["buyer_id"],
            credit_term_id=data.get("credit_term_id"),
            lines=data.get("lines"),
            notes=data.get("notes"),
            expected_delivery_date=data.get("expected_delivery_date"),
        )
        return jsonify(po.to_dict()), 201
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("create purchase order")


@b2b_bp.get("/purchase-orders/<int:po_id>")
def get_purchase_order_route(po_id: int):
    try:
        return jsonify(purchase_order_service.get_purchase_order(po_id).to_dict())
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("get purchase order")


@b2b_bp.get("/purchase-orders/po-number/<po_number>")
def get_purchase_order_by_number_route(po_number: str):
    try:
        return jsonify(purchase_order_service.get_purchase_order_by_number(po_number).to_dict())
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("get purchase order by number")


@b2b_bp.get("/organizations/<int:org_id>/purchase-orders")
def list_organization_purchase_orders_route(org_id: int):
    try:
        orders = purchase_order_service.list_organization_purchase_orders(
            org_id, status=request.args.get("status")
        )
        return jsonify({"items": [o.to_dict(include_lines=False) for o in orders], "count": len(orders)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list organization purchase orders")


@b2b_bp.get("/buyers/<int:buyer_id>/purchase-orders")
def list_buyer_purchase_orders_route(buyer_id: int):
    try:
        orders = purchase_order_service.list_buyer_purchase_orders(
            buyer_id, status=request.args.get("status")
        )
        return jsonify({"items": [o.to_dict(include_lines=False) for o in orders], "count": len(orders)})
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("list buyer purchase orders")


def _transition_response(po_id: int):
    po = purchase_order_service.get_purchase_order(po_id)
    return jsonify({"success": True, "purchase_order": po.to_dict()}), 200


@b2b_bp.post("/purchase-orders/<int:po_id>/submit")
def submit_purchase_order_route(po_id: int):
    try:
        data = _json_body()
        purchase_order_service.submit_purchase_order(po_id, expected_version=data.get("expected_version"))
        return _transition_response(po_id)
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("submit purchase order")


@b2b_bp.post("/purchase-orders/<int:po_id>/approve")
def approve_purchase_order_route(po_id: int):
    """Body: {"approver_id": int, "expected_version": int (optional)}"""
    try:
        data = _json_body()
        purchase_order_service.approve_purchase_order(
            po_id,
            data.get("approver_id"),
            expected_version=data.get("expected_version"),
        )
        return _transition_response(po_id)
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("approve purchase order")


@b2b_bp.post("/purchase-orders/<int:po_id>/reject")
def reject_purchase_order_route(po_id: int):
    try:
        data = _json_body()
        purchase_order_service.reject_purchase_order(
            po_id,
            data.get("reason"),
            expected_version=data.get("expected_version"),
        )
        return _transition_response(po_id)
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("reject purchase order")


@b2b_bp.post("/purchase-orders/<int:po_id>/cancel")
def cancel_purchase_order_route(po_id: int):
    try:
        data = _json_body()
        purchase_order_service.cancel_purchase_order(po_id, expected_version=data.get("expected_version"))
        return _transition_response(po_id)
    except ProcurementError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("cancel purchase order")
