# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/petshop/routes/sales.py
"""
Sales API routes

A sale is registered complete in one request: stock is checked and
decremented together with the sale rows. Cancelling returns the goods.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, ValidationError, error_response
from ..services import reporting_service, sales_service
from .params import datetime_range_args, page_args

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - status: COMPLETED | CANCELLED
    - payment_type: CASH | CARD | PIX | CREDIT_TERM
    - customer_id, seller_user_id: int
    - from / to: ISO-8601 (inclusive), on sold_at
    - page / per_page
    """
    page, per_page = page_args()
    try:
        from_date, to_date = datetime_range_args()
        result = sales_service.list_sales(
            status=request.args.get("status"),
            payment_type=request.args.get("payment_type"),
            customer_id=request.args.get("customer_id", type=int),
            seller_user_id=request.args.get("seller_user_id", type=int),
            from_date=from_date,
            to_date=to_date,
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@sales_bp.get("/report")
@require_auth
def sales_report_route():
    try:
        from_date, to_date = datetime_range_args()
        report = reporting_service.sales_report(
            from_date=from_date,
            to_date=to_date,
            top=request.args.get("top", 10, type=int),
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(report), 200


@sales_bp.get("/dashboard-stats")
@require_auth
def dashboard_stats_route():
    return jsonify(reporting_service.dashboard_stats()), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Register a completed sale.

    Body:
    - payment_type: CASH | CARD | PIX | CREDIT_TERM (required)
    - lines: [{product_id, quantity, unit_price_cents?}] (required, non-empty)
    - customer_id: int (required for CREDIT_TERM)
    - discount_cents: int (optional, 0 <= discount <= gross)
    - notes: str (optional)
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get("customer_id")

    try:
        if customer_id is not None and (not isinstance(customer_id, int) or isinstance(customer_id, bool)):
            raise ValidationError("customer_id must be an integer")

        sale = sales_service.create_sale(
            lines=data.get("lines"),
            payment_type=data.get("payment_type"),
            customer_id=customer_id,
            discount_cents=data.get("discount_cents", 0),
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Sale #%s created by user %s (%s cents, %s)",
        sale.sale_number, g.current_user.id, sale.net_total_cents, sale.payment_type,
    )
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
def cancel_sale_route(sale_id: int):
    """Cancel a completed sale. Body: reason (optional)."""
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.cancel_sale(sale_id, reason=data.get("reason"), user_id=g.current_user.id)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Sale #%s cancelled by user %s", sale.sale_number, g.current_user.id)
    return jsonify({"sale": sale.to_dict()}), 200
