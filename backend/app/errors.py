"""
errors.py — AppError base class and error code registry.

Every error returned by the AutoLogin service must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add test
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Login-link failures (INVALID_LINK / INVALID_USER / INVALID_AUTH) are shown
    to a browser, not an API client. They are raised as LoginLinkError and
    rendered as a page, not as the JSON envelope.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class LoginLinkError(AppError):
    """
    Terminal failure of a login-link request.

    `message` is the user-visible text produced by the configured message
    resolver for `code`. Request processing stops once this is raised; the
    request never falls through to normal routing.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 403)


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_REDIRECT           = "INVALID_REDIRECT"
    INVALID_TTL                = "INVALID_TTL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    LINK_NOT_FOUND             = "LINK_NOT_FOUND"

    # ── Login-link failures (403, rendered as a page) ─────────────────────
    INVALID_LINK               = "INVALID_LINK"   # record absent, expired or malformed
    INVALID_USER               = "INVALID_USER"   # account no longer exists
    INVALID_AUTH               = "INVALID_AUTH"   # signature mismatch

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"

    # ── Service Errors (503) ───────────────────────────────────────────────
    NOT_INSTALLED              = "NOT_INSTALLED"  # endpoint option missing

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"

