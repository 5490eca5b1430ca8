"""
routes/links.py — Login link route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

Links are issued for the caller's own account only. Issuing links for other
accounts is an administrative action, available through `flask autologin generate`.

Endpoints (base url_prefix=/api/v1/links):
  POST   /links            → 201
  GET    /links/existing   → 200
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.link_schema import IssueLinkSchema
from backend.app.services import link_service
from backend.app.services.link_service import NotInstalledError

links_bp = Blueprint("links", __name__)


def _settings() -> link_service.LinkSettings:
    return current_app.extensions["autologin"].settings()


def _not_installed(exc: NotInstalledError) -> AppError:
    return AppError(ErrorCode.NOT_INSTALLED, str(exc), 503)


@links_bp.route("", methods=["POST"])
@require_auth
def issue():
    """POST /links — Issue (or refresh) a login link for the caller."""
    data = IssueLinkSchema().load(request.get_json(silent=True) or {})
    try:
        url = link_service.issue_link(
            user_id=g.user_id,
            session=db.session,
            settings=_settings(),
            redirect=data["redirect"],
            ttl=data["ttl"],
        )
    except NotInstalledError as exc:
        raise _not_installed(exc) from exc
    db.session.commit()
    return jsonify({"data": {"url": url}, "warnings": []}), 201


@links_bp.route("/existing", methods=["GET"])
@require_auth
def existing():
    """GET /links/existing — The caller's live login link, if any."""
    try:
        url = link_service.find_existing_link(
            user_id=g.user_id,
            session=db.session,
            settings=_settings(),
        )
    except NotInstalledError as exc:
        raise _not_installed(exc) from exc
    if url is None:
        raise AppError(
            ErrorCode.LINK_NOT_FOUND,
            "No live login link exists for this account.",
            404,
        )
    return jsonify({"data": {"url": url}, "warnings": []}), 200
