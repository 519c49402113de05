# Overview: Flask API routes for the caller's categories (product and finance).

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, error_response
from ..models import Category
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload
from .params import bool_arg

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "kind", "color", "icon", "is_active"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
@require_auth
def list_categories_route():
    """
    Query params:
    - kind: PRODUCT | INCOME | EXPENSE (optional)
    - include_inactive: bool (default false)
    """
    try:
        categories = catalog_service.list_categories(
            g.current_user.id,
            kind=request.args.get("kind"),
            include_inactive=bool(bool_arg("include_inactive")),
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify({"items": [c.to_dict() for c in categories], "count": len(categories)}), 200


@categories_bp.get("/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = catalog_service.get_category(g.current_user.id, category_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"category": category.to_dict()}), 200


@categories_bp.post("")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(g.current_user.id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"category": category.to_dict()}), 201


@categories_bp.put("/<int:category_id>")
@require_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(g.current_user.id, category_id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"category": category.to_dict()}), 200


@categories_bp.delete("/<int:category_id>")
@require_auth
def delete_category_route(category_id: int):
    """Soft delete: the category is deactivated and stays referenced by its rows."""
    try:
        category = catalog_service.delete_category(g.current_user.id, category_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"category": category.to_dict()}), 200
