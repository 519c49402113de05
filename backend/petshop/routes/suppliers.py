# Overview: Flask API routes for suppliers.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, error_response
from ..models import Supplier
from ..services import catalog_service, reporting_service
from ..validation import ModelValidationPolicy, validate_payload
from .params import bool_arg, datetime_range_args, page_args

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "tax_id", "phone", "email", "address", "notes", "is_active"},
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    """
    Query params:
    - search: matches name or tax_id
    - active: bool (optional)
    - page / per_page: pagination (all rows when page is omitted)
    """
    page, per_page = page_args()
    try:
        result = catalog_service.list_suppliers(
            search=request.args.get("search"),
            active=bool_arg("active"),
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@suppliers_bp.get("/report")
@require_auth
def supplier_report_route():
    """Query params: from / to (ISO-8601, on purchased_at), top (default 10)."""
    try:
        from_date, to_date = datetime_range_args()
        report = reporting_service.supplier_report(
            from_date=from_date,
            to_date=to_date,
            top=request.args.get("top", 10, type=int),
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(report), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.get_supplier(supplier_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"supplier": supplier.to_dict()}), 200


@suppliers_bp.post("")
@require_auth
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = catalog_service.create_supplier(patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"supplier": supplier.to_dict()}), 201


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
        supplier = catalog_service.update_supplier(supplier_id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"supplier": supplier.to_dict()}), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
def delete_supplier_route(supplier_id: int):
    try:
        catalog_service.delete_supplier(supplier_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"ok": True}), 200
