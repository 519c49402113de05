# Overview: Flask API routes for customers and their store-credit balance.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, error_response
from ..models import Customer
from ..services import customer_service, reporting_service
from ..validation import ModelValidationPolicy, enforce_rules_customer, validate_payload
from .params import bool_arg, page_args

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "tax_id", "phone", "email", "address", "pet_names", "notes",
        "credit_limit_cents", "is_active",
    },
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    Query params:
    - search: matches name, tax_id, phone or pet names
    - active: bool (optional)
    - with_debt: bool, only customers owing money
    - page / per_page
    """
    page, per_page = page_args()
    try:
        result = customer_service.list_customers(
            search=request.args.get("search"),
            active=bool_arg("active"),
            with_debt=bool(bool_arg("with_debt")),
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@customers_bp.get("/report")
@require_auth
def customer_report_route():
    report = reporting_service.customer_report(
        top=request.args.get("top", 10, type=int),
        inactive_days=request.args.get("inactive_days", 90, type=int),
    )
    return jsonify(report), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        customer = customer_service.create_customer(patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    if "debt_cents" in payload:
        return jsonify({"error": "debt_cents cannot be edited directly; use adjust-debt"}), 400

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        customer = customer_service.update_customer(customer_id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    """Customers with sales or open debt are deactivated instead of deleted."""
    try:
        deleted = customer_service.delete_customer(customer_id)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"ok": True, "deleted": deleted, "deactivated": not deleted}), 200


@customers_bp.post("/<int:customer_id>/adjust-debt")
@require_auth
def adjust_debt_route(customer_id: int):
    """
    Body: amount_cents (> 0), operation (ADD | SUBTRACT), note (optional).

    A SUBTRACT larger than the debt leaves it at zero; the excess comes back
    as discarded_cents.
    """
    data = request.get_json(silent=True) or {}
    try:
        adjustment = customer_service.adjust_debt(
            customer_id,
            data.get("amount_cents"),
            data.get("operation"),
            note=data.get("note"),
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust customer debt")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify(adjustment.to_dict()), 200
