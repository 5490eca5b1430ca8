"""
services/login_service.py — Login link verification.

handle() runs one request through a single-pass state machine:

  Parse            path is exactly "/{endpoint}/{public}"   else pass through
  Match endpoint   endpoint is the installed one            else pass through
  Lookup           live, well-formed record at public       else INVALID_LINK
  Resolve user     record.user_id is an existing account    else INVALID_USER
  Verify signature (only if check_signature)                else INVALID_AUTH
  Authenticate     returns LoginResult(user_id, redirect_url)

Pass through means None: the request is not a login link and normal routing
continues. Any failure raises LoginLinkError and stops the request.

Records are not consumed: a link keeps working until its TTL runs out.

Layer rules:
  - No imports from routes
  - No use of flask.request or flask.g; the caller passes a RequestContext
  - The session cookie is set by the caller, not here
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.errors import ErrorCode, LoginLinkError
from backend.app.schemas.magic_record_schema import MalformedRecordError, decode_record
from backend.app.services import auth_service, transient_service
from backend.app.services.link_service import (
    LinkSettings,
    normalize_redirect,
    record_is_valid,
    record_key,
)

MessageResolver = Callable[[str], str]

DEFAULT_MESSAGES: dict[str, str] = {
    ErrorCode.INVALID_LINK: "This login link is invalid or has expired.",
    ErrorCode.INVALID_USER: "Invalid user.",
    ErrorCode.INVALID_AUTH: "AutoLogin authentication failed.",
}


def default_message(code: str) -> str:
    return DEFAULT_MESSAGES.get(code, "AutoLogin authentication failed.")


@dataclass(frozen=True)
class RequestContext:
    """The parts of an inbound request the verifier looks at."""

    path: str
    host: str = ""

    @property
    def hostname(self) -> str:
        """Host without port, lower-cased, in the same form urlparse().hostname uses."""
        host = self.host.strip().lower()
        if host.startswith("["):
            # IPv6 literal, e.g. "[::1]:5000"
            return host[1:].split("]", 1)[0]
        return host.rsplit(":", 1)[0] if ":" in host else host


@dataclass(frozen=True)
class LoginResult:
    user_id: int
    redirect_url: str


def parse_path(path: str) -> tuple[str, str] | None:
    """
    Splits "/{endpoint}/{public}" into its two segments.

    Returns None unless the path, trimmed of slashes, has exactly two
    non-empty segments.
    """
    fragments = (path or "").strip("/").split("/")
    if len(fragments) != 2 or not all(fragments):
        return None
    endpoint, public = fragments
    return endpoint, public


def _fail(code: str, resolve_message: MessageResolver) -> LoginLinkError:
    return LoginLinkError(code, resolve_message(code))


def handle(
        ctx: RequestContext,
        settings: LinkSettings,
        session: Session,
        resolve_message: MessageResolver = default_message,
        logger=None,
) -> LoginResult | None:
    """
    Verifies a login-link request.

    Returns:
      None        — not a login-link request for this deployment.
      LoginResult — the user to authenticate and where to send them.

    Raises:
      LoginLinkError(INVALID_LINK | INVALID_USER | INVALID_AUTH)
    """
    # ── Parse ──────────────────────────────────────────────────────────────
    fragments = parse_path(ctx.path)
    if fragments is None:
        return None
    endpoint, public = fragments

    # ── Match endpoint ─────────────────────────────────────────────────────
    if not settings.endpoint or not hmac.compare_digest(
            endpoint.encode("utf-8"), settings.endpoint.encode("utf-8"),
    ):
        return None

    # ── Lookup ─────────────────────────────────────────────────────────────
    # A store failure is indistinguishable from an absent record.
    try:
        raw = transient_service.get_transient(record_key(public), session)
    except SQLAlchemyError:
        if logger is not None:
            logger.exception("AutoLogin: transient store lookup failed")
        session.rollback()
        raw = None
    if raw is None:
        raise _fail(ErrorCode.INVALID_LINK, resolve_message)

    try:
        record = decode_record(raw)
    except MalformedRecordError as exc:
        code = ErrorCode.INVALID_USER if exc.missing_user else ErrorCode.INVALID_LINK
        raise _fail(code, resolve_message) from exc

    # ── Resolve user ───────────────────────────────────────────────────────
    user = auth_service.resolve_user(record["user_id"], session)
    if user is None:
        raise _fail(ErrorCode.INVALID_USER, resolve_message)

    # ── Verify signature ───────────────────────────────────────────────────
    if settings.check_signature and not record_is_valid(
            public, record, settings, ctx.hostname,
    ):
        raise _fail(ErrorCode.INVALID_AUTH, resolve_message)

    # ── Authenticate ───────────────────────────────────────────────────────
    redirect = normalize_redirect(record["redirect"], settings.base_url)
    return LoginResult(
        user_id=user.id,
        redirect_url=f"{settings.base_url}{redirect}",
    )
