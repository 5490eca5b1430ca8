"""
middleware/auth_middleware.py — Session authentication decorator.

The @require_auth decorator:
  1. Reads the session token, from "Authorization: Bearer <token>" or,
     failing that, from the cookie set by a successful login link
  2. Decodes and verifies the JWT signature
  3. Checks token expiry
  4. Attaches user_id (int) to flask.g for the duration of the request
  5. Raises the appropriate 401 error if any step fails

This middleware only authenticates. Whether the account still exists is the
service layer's question (auth_service.get_current_user → USER_NOT_FOUND).

Error codes:
  TOKEN_MISSING  (401) — no header and no cookie
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces session authentication.

    Attaches the authenticated user's ID to flask.g.user_id.
    Raises AppError for all auth failures — the global error handler converts
    these to the correct JSON response. Routes never catch AppError.

    Usage:
        @links_bp.route("", methods=["POST"])
        @require_auth
        def issue():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _read_raw_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if auth_header:
        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "Authorization header must be in the format: Bearer <token>.",
                401,
            )
        return parts[1]

    cookie = request.cookies.get(current_app.config["AUTOLOGIN_COOKIE_NAME"], "")
    if cookie:
        return cookie

    raise AppError(
        ErrorCode.TOKEN_MISSING,
        "Authentication required. Follow a login link or provide a Bearer token.",
        401,
    )


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id.

    Separated from the decorator wrapper for testability — can be called
    directly in tests without wrapping a real view function.
    """
    raw_token = _read_raw_token()

    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The session has expired. Request a new login link.",
            401,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, invalid claims, etc.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The session token is invalid or has been tampered with.",
            401,
        )

    sub = payload.get("sub")
    if sub is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The session token is missing the required 'sub' claim.",
            401,
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the session token is not a valid user ID.",
            401,
        )

    g.user_id = user_id
