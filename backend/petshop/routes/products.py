# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/petshop/routes/products.py
"""
Product management routes.

stock_quantity is read-only here. Initial stock goes in through
`initial_stock` on create; later changes go through purchases, sales and
POST /api/products/<id>/adjust-stock.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, error_response
from ..models import Product
from ..services import products_service, stock_service
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .params import bool_arg, page_args

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "barcode", "category_id", "supplier_id", "unit",
        "cost_cents", "price_cents", "min_stock", "sold_by_weight", "notes", "is_active",
    },
    required_on_create={"name", "category_id", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products with optional filters and pagination.

    Query params:
    - search: matches name, barcode or description
    - category_id, supplier_id: int (optional)
    - active: bool (optional)
    - low_stock: bool, only products at or below min_stock
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page, per_page = page_args()
    try:
        result = products_service.list_products(
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            supplier_id=request.args.get("supplier_id", type=int),
            active=bool_arg("active"),
            low_stock=bool(bool_arg("low_stock")),
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    products = stock_service.low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Create a new product.

    Optional `initial_stock` (>= 0) is recorded as an INITIAL_STOCK movement
    in the same transaction.
    """
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("initial_stock", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(
            patch=patch,
            initial_stock=initial_stock,
            user_id=g.current_user.id,
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Product %s created (%s)", product.id, product.name)
    return jsonify({"product": product.to_dict()}), 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if "stock_quantity" in payload:
        return jsonify({
            "error": "stock_quantity cannot be edited directly; use adjust-stock",
        }), 400

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(product_id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"ok": True}), 200


@products_bp.post("/<int:product_id>/adjust-stock")
@require_auth
def adjust_stock_route(product_id: int):
    """
    Set stock to an absolute quantity after a physical count.

    Body: new_quantity (>= 0), reason (MANUAL_ADJUSTMENT | INITIAL_STOCK | RETURN), note (optional).
    """
    data = request.get_json(silent=True) or {}
    if data.get("new_quantity") is None:
        return jsonify({"error": "new_quantity is required"}), 400

    try:
        adjustment = stock_service.adjust_stock(
            product_id,
            data.get("new_quantity"),
            data.get("reason"),
            note=data.get("note"),
            user_id=g.current_user.id,
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Stock of product %s adjusted %s -> %s by user %s",
        product_id, adjustment.previous_quantity, adjustment.new_quantity, g.current_user.id,
    )
    return jsonify(adjustment.to_dict()), 200
