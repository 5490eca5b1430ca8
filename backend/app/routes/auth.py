"""
routes/auth.py — Session route handlers.

Layer rules:
  - Call exactly ONE service function
  - Return the standard response envelope: {"data": {...}, "warnings": []}

AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Sessions are only ever created by following a login link (see
middleware/login_link_middleware.py). There is no password login.

Endpoints (base url_prefix=/api/v1/auth):
  GET    /auth/me        → 200
  POST   /auth/logout    → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Drop the session cookie. Login links stay valid."""
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    return auth_service.clear_session(response), 200
