# Overview: Flask API routes for purchase orders; confirmation moves goods into stock.

# backend/petshop/routes/purchases.py
"""
Purchase API routes

    POST /api/purchases                 create (PENDING)
    POST /api/purchases/<id>/confirm    receive goods into stock
    POST /api/purchases/<id>/cancel     cancel a PENDING purchase
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, ValidationError, error_response
from ..services import purchase_service, reporting_service
from ..time_utils import parse_iso_datetime
from .params import datetime_range_args, page_args

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    """
    Query params:
    - status: PENDING | CONFIRMED | CANCELLED
    - supplier_id: int
    - from / to: ISO-8601 (inclusive), on purchased_at
    - page / per_page
    """
    page, per_page = page_args()
    try:
        from_date, to_date = datetime_range_args()
        result = purchase_service.list_purchases(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
            from_date=from_date,
            to_date=to_date,
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@purchases_bp.get("/report")
@require_auth
def purchase_report_route():
    try:
        from_date, to_date = datetime_range_args()
        report = reporting_service.purchase_report(
            from_date=from_date,
            to_date=to_date,
            top=request.args.get("top", 10, type=int),
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(report), 200


@purchases_bp.get("/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"purchase": purchase.to_dict()}), 200


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    """
    Body:
    - supplier_id: int (required)
    - lines: [{product_id, quantity, unit_cost_cents}] (required, non-empty)
    - invoice_number, notes, purchased_at (optional)
    """
    data = request.get_json(silent=True) or {}
    supplier_id = data.get("supplier_id")

    try:
        if not isinstance(supplier_id, int) or isinstance(supplier_id, bool):
            raise ValidationError("supplier_id must be an integer")
        try:
            purchased_at = parse_iso_datetime(data.get("purchased_at"))
        except ValueError:
            raise ValidationError("purchased_at must be an ISO-8601 datetime")

        purchase = purchase_service.create_purchase(
            supplier_id=supplier_id,
            lines=data.get("lines"),
            invoice_number=data.get("invoice_number"),
            notes=data.get("notes"),
            purchased_at=purchased_at,
            user_id=g.current_user.id,
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Purchase #%s created (%s cents)", purchase.purchase_number, purchase.total_cents)
    return jsonify({"purchase": purchase.to_dict()}), 201


@purchases_bp.post("/<int:purchase_id>/confirm")
@require_auth
def confirm_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.confirm_purchase(purchase_id, user_id=g.current_user.id)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm purchase")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Purchase #%s confirmed by user %s", purchase.purchase_number, g.current_user.id)
    return jsonify({"purchase": purchase.to_dict()}), 200


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_auth
def cancel_purchase_route(purchase_id: int):
    data = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.cancel_purchase(purchase_id, reason=data.get("reason"))
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Purchase #%s cancelled by user %s", purchase.purchase_number, g.current_user.id)
    return jsonify({"purchase": purchase.to_dict()}), 200
