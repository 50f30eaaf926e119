# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/kasir/routes/auth.py
"""
Authentication API routes

POST /api/auth/login  -> {token, user}
GET  /api/auth/me     -> current user
POST /api/auth/logout -> revoke the presented token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]) or not isinstance(username, str) or not isinstance(password, str):
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username.strip(), password)
        if not user:
            current_app.logger.warning("Failed login for '%s' from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr
        )

        return jsonify({
            "token": token,
            "user": user.to_dict(),
            "session": session.to_dict(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify(g.current_user.to_dict()), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    return jsonify({"ok": True}), 200
