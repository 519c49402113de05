# Overview: Flask API routes for the owner's income/expense transactions.

# backend/petshop/routes/transactions.py
"""
Finance transactions, scoped to the calling user.

Every create/update/delete refreshes the user's balance snapshot in the same
database transaction.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, error_response
from ..models import FinanceTransaction
from ..services import finance_service
from ..validation import ModelValidationPolicy, enforce_rules_transaction, validate_payload
from .params import date_range_args, page_args

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "category_id", "kind", "description", "amount_cents", "occurred_on",
        "payment_method", "notes", "tags",
    },
    required_on_create={"category_id", "kind", "description", "amount_cents", "occurred_on"},
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    Query params:
    - kind: INCOME | EXPENSE
    - category_id: int
    - from / to: ISO-8601 dates (inclusive), on occurred_on
    - search: matches description
    - page / per_page
    """
    page, per_page = page_args()
    try:
        from_date, to_date = date_range_args()
        result = finance_service.list_transactions(
            g.current_user.id,
            kind=request.args.get("kind"),
            category_id=request.args.get("category_id", type=int),
            from_date=from_date,
            to_date=to_date,
            search=request.args.get("search"),
            page=page,
            per_page=per_page,
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(result), 200


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        tx = finance_service.get_transaction(g.current_user.id, transaction_id)
    except PetShopError as e:
        return error_response(e)
    return jsonify({"transaction": tx.to_dict()}), 200


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=FinanceTransaction, payload=payload, policy=TRANSACTION_POLICY, partial=False
        )
        enforce_rules_transaction(patch)
        tx = finance_service.create_transaction(g.current_user.id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"transaction": tx.to_dict()}), 201


@transactions_bp.put("/<int:transaction_id>")
@require_auth
def update_transaction_route(transaction_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=FinanceTransaction, payload=payload, policy=TRANSACTION_POLICY, partial=True
        )
        enforce_rules_transaction(patch)
        tx = finance_service.update_transaction(g.current_user.id, transaction_id, patch=patch)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"transaction": tx.to_dict()}), 200


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
def delete_transaction_route(transaction_id: int):
    try:
        finance_service.delete_transaction(g.current_user.id, transaction_id)
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"ok": True}), 200
