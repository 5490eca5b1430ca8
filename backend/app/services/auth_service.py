"""
services/auth_service.py — Identity and session collaborators.

Responsibilities:
  - Resolve a user id against the host identity table
  - Establish the authenticated session once a login link has been verified
    (a signed JWT in an HttpOnly cookie)
  - Clear that session on logout

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request or flask.g
  - current_app.config is used ONLY to read the JWT secret, expiry and cookie
    settings. Secrets must not be hardcoded or read from env directly in a way
    that bypasses Flask config validation.

Session token design:
  - JWT, HS256, sub = user_id (str), TTL from JWT_ACCESS_TOKEN_EXPIRES
  - Carried in the AUTOLOGIN_COOKIE_NAME cookie (HttpOnly, SameSite=Lax) so a
    browser following a login link is authenticated on the next request.
  - The same token is accepted as "Authorization: Bearer <token>".
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

import jwt
from flask import Response, current_app
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User


# ── Private helpers ────────────────────────────────────────────────────────

def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def resolve_user(user_id: int, session: Session) -> User | None:
    """Identity lookup. Returns None when the account does not exist."""
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    if user_id < 1:
        return None
    return session.get(User, user_id)


def create_session_token(user_id: int) -> str:
    """
    Creates a signed JWT session token.
    Payload: sub (user_id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expiry,
        # Guarantees each issued token is unique even if generated in the same second.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def establish_session(response: Response, user_id: int) -> Response:
    """
    Sets the authenticated-session cookie for `user_id` on `response`.

    Returns the same response for chaining.
    """
    max_age = int(current_app.config["JWT_ACCESS_TOKEN_EXPIRES"].total_seconds())
    response.set_cookie(
        current_app.config["AUTOLOGIN_COOKIE_NAME"],
        create_session_token(user_id),
        max_age=max_age,
        httponly=True,
        secure=current_app.config.get("AUTOLOGIN_COOKIE_SECURE", False),
        samesite="Lax",
    )
    return response


def clear_session(response: Response) -> Response:
    response.delete_cookie(
        current_app.config["AUTOLOGIN_COOKIE_NAME"],
        httponly=True,
        secure=current_app.config.get("AUTOLOGIN_COOKIE_SECURE", False),
        samesite="Lax",
    )
    return response


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — the account behind a still-valid session
        token was deleted after the session was established.
    """
    user = resolve_user(user_id, session)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return _build_user_dict(user)
