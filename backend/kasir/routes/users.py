# Overview: Flask API routes for user administration; parses input and returns JSON responses.

# backend/kasir/routes/users.py
"""
User management routes (admin only).

Users are deactivated, never deleted, so historical transactions keep
their cashier attribution.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import User
from ..services import auth_service
from ..services.auth_service import PasswordValidationError
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth, require_role

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role("admin")
def list_users():
    """
    List users.

    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"

    query = db.session.query(User)
    if not include_inactive:
        query = query.filter_by(is_active=True)

    users = query.order_by(User.username).all()
    return jsonify([u.to_dict() for u in users]), 200


@users_bp.post("")
@require_auth
@require_role("admin")
def create_user_route():
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            role=data.get("role", "cashier"),
            full_name=data.get("full_name"),
        )
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("User %s created by %s", user.username, g.current_user.username)
    return jsonify(user.to_dict()), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_role("admin")
def update_user_route(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    data = request.get_json(silent=True) or {}
    patch = {k: data[k] for k in ("username", "full_name", "role", "is_active", "password") if k in data}

    try:
        user = auth_service.update_user(user, patch, acting_user=g.current_user)
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except (ValidationError, PasswordValidationError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400

    return jsonify(user.to_dict()), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role("admin")
def deactivate_user_route(user_id: int):
    """Disable a user account (soft delete)."""
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404

    try:
        auth_service.update_user(user, {"is_active": False}, acting_user=g.current_user)
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409

    return jsonify({"ok": True}), 200
