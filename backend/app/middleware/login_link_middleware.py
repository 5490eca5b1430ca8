"""
middleware/login_link_middleware.py — AutoLogin front controller.

AutoLogin is a Flask extension. init_app() registers a before_request hook
that looks at every request path before routing:

  - not "/{endpoint}/{public}"      → returns None, routing continues
  - verified login link             → session cookie + 302 to the target
  - failed login link               → LoginLinkError, rendered by the global
                                      error handler; routing never runs

The endpoint is read from the options table on first use and cached for the
life of the process. install / uninstall call reload().

Usage:
    autologin = AutoLogin(app, message_resolver=my_messages)
    current_app.extensions["autologin"].settings()
"""

from __future__ import annotations

from flask import Flask, current_app, redirect, request

from backend.app.errors import LoginLinkError
from backend.app.extensions import db
from backend.app.services import auth_service, endpoint_service, login_service
from backend.app.services.link_service import LinkSettings
from backend.app.services.login_service import MessageResolver, RequestContext


class AutoLogin:

    def __init__(
            self,
            app: Flask | None = None,
            message_resolver: MessageResolver | None = None,
    ) -> None:
        self.message_resolver: MessageResolver = (
            message_resolver or login_service.default_message
        )
        self._endpoint: str | None = None
        self._loaded = False
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions["autologin"] = self
        app.before_request(self._intercept)

    # ── Endpoint cache ─────────────────────────────────────────────────────

    @property
    def endpoint(self) -> str | None:
        """Installed endpoint; loaded once, needs an app context."""
        if not self._loaded:
            self._endpoint = endpoint_service.load_endpoint(db.session)
            self._loaded = True
        return self._endpoint

    def reload(self) -> None:
        """Forgets the cached endpoint; the next access reads it again."""
        self._endpoint = None
        self._loaded = False

    def settings(self) -> LinkSettings:
        return LinkSettings.from_config(current_app.config, self.endpoint)

    # ── Request hook ───────────────────────────────────────────────────────

    def _intercept(self):
        if login_service.parse_path(request.path) is None:
            return None
        if self.endpoint is None:
            return None

        ctx = RequestContext(path=request.path, host=request.host)
        try:
            result = login_service.handle(
                ctx,
                self.settings(),
                db.session,
                self.message_resolver,
                logger=current_app.logger,
            )
        except LoginLinkError as exc:
            current_app.logger.warning("AutoLogin: login link rejected (%s)", exc.code)
            raise

        if result is None:
            return None

        # Expired rows deleted during lookup.
        db.session.commit()

        current_app.logger.info("AutoLogin: user %s authenticated by login link", result.user_id)
        response = redirect(result.redirect_url, code=302)
        auth_service.establish_session(response, result.user_id)
        return response
