# Overview: Admin-only user management routes.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import PetShopError, error_response
from ..services import auth_service

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """
    Create a back-office account.

    Body: name, email, password, role (ADMIN | USER, default USER).
    """
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("name", "email", "password") if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    try:
        user = auth_service.create_user(
            name=data["name"],
            email=data["email"],
            password=data["password"],
            role=data.get("role") or "USER",
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("User %s created with role %s", user.email, user.role)
    return jsonify({"user": user.to_dict()}), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    """Update name, role, is_active or password. Password changes and deactivation end open sessions."""
    data = request.get_json(silent=True) or {}
    unknown = sorted(set(data) - {"name", "role", "is_active", "password"})
    if unknown:
        return jsonify({"error": f"Field not allowed: {', '.join(unknown)}"}), 400

    try:
        user = auth_service.update_user(
            user_id,
            name=data.get("name"),
            role=data.get("role"),
            is_active=data.get("is_active"),
            password=data.get("password"),
        )
    except PetShopError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_dict()}), 200
