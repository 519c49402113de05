# Overview: Owner finance dashboard and period summaries.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import PetShopError, error_response
from ..services import balance_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """Balance snapshot, latest transactions, this month by category, 6-month evolution."""
    return jsonify(balance_service.dashboard(g.current_user.id)), 200


@dashboard_bp.get("/summary")
@require_auth
def summary_route():
    """Query param period: month (default) | quarter | year."""
    try:
        summary = balance_service.period_summary(
            g.current_user.id,
            period=request.args.get("period", "month"),
        )
    except PetShopError as e:
        return error_response(e)
    return jsonify(summary), 200
