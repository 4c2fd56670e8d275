# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/kasir/routes/auth.py
"""
Authentication API routes

MULTI-TENANT: login takes the tenant code explicitly. The issued token
carries that tenant for every later request.
"""

from datetime import timedelta

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..validation import LOGIN, validate_request
from ..decorators import require_auth, handle_service_errors


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
@handle_service_errors("log in")
def login_route():
    """
    Authenticate and create a session token.

    Body: {"tenant_code": "DEMO", "username": "kasir1", "password": "..."}

    The token must be sent as "Authorization: Bearer <token>" on protected routes.
    """
    data = validate_request(LOGIN, request.get_json(silent=True))

    user = auth_service.authenticate(data["tenant_code"], data["username"], data["password"])
    if not user:
        current_app.logger.warning(
            "Failed login tenant=%s username=%s ip=%s",
            data["tenant_code"], data["username"], request.remote_addr,
        )
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))
    session, token = session_service.create_session(user.id, ttl=ttl)

    current_app.logger.info("Login user=%s tenant=%s", user.id, user.tenant_id)
    return jsonify({
        "success": True,
        "token": token,
        "expires_at": session.expires_at.isoformat(),
        "user": user.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    current_app.logger.info("Logout user=%s", g.current_user.id)
    return jsonify({"success": True, "message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()}), 200
