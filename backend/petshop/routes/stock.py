# Overview: Flask API routes for the stock ledger, inventory views and reconciliation.

# backend/petshop/routes/stock.py
"""
Stock ledger API

Movements are append-only. The only writes exposed here are manual
ENTRY/EXIT movements; purchases, sales and adjustments create their own.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import PetShopError, error_response
from ..services import reporting_service, stock_service
from .params import bool_arg, datetime_range_args, page_args

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Query params:
    - product_id, sale_id, purchase_id: int (optional)
    - direction: ENTRY | EXIT
    - reason: PURCHASE | SALE | RETURN | INITIAL_STOCK | MANUAL_ADJUSTMENT
    - from / to: ISO-8601 dates or datetimes (inclusive)
    - page / per_page
    """
    page, per_page = page_args()
    try:
        from_date, to_date = datetime_range_args()
        result = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            direction=request.args.get("direction"),
            reason=request.args.get("reason"),
            sale_id=request.args.get("sale_id", type=int),
            purchase_id=request.args.get("purchase_id", type=int),
            from_date=from_date,
            to_date=to_date,
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@stock_bp.post("/movements")
@require_auth
def record_movement_route():
    """Manual entry or exit. Body: product_id, direction, quantity, note (optional)."""
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id must be an integer"}), 400

    try:
        movement = stock_service.record_movement(
            product_id,
            data.get("direction"),
            data.get("quantity"),
            note=data.get("note"),
            user_id=g.current_user.id,
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Manual %s of %s for product %s by user %s",
        movement.direction, movement.quantity, product_id, g.current_user.id,
    )
    return jsonify({"movement": movement.to_dict()}), 201


@stock_bp.get("/movements/<int:movement_id>")
@require_auth
def get_movement_route(movement_id: int):
    try:
        movement = stock_service.get_movement(movement_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"movement": movement.to_dict()}), 200


@stock_bp.get("/inventory")
@require_auth
def inventory_route():
    groups = stock_service.inventory_by_category()
    return jsonify({"items": groups, "count": len(groups)}), 200


@stock_bp.get("/report")
@require_auth
def stock_report_route():
    try:
        from_date, to_date = datetime_range_args()
        report = reporting_service.stock_report(
            from_date=from_date,
            to_date=to_date,
            top=request.args.get("top", 10, type=int),
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(report), 200


@stock_bp.post("/reconcile")
@require_auth
@require_admin
def reconcile_route():
    """
    Replay the ledger against every product counter.

    Query param fix=true resets mismatching counters to the ledger value.
    """
    try:
        fix = bool(bool_arg("fix"))
        mismatches = stock_service.reconcile_stock(fix=fix)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "fixed": fix,
        "consistent": not mismatches,
        "mismatches": mismatches,
    }), 200
