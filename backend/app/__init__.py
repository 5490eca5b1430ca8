"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask autologin ...` and migrations to run without a server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  3. Attach the AutoLogin front controller (before_request hook)
  4. Register route blueprints under /api/v1 and the `flask autologin` CLI
  5. Register global error handlers (LoginLinkError → page, AppError → JSON,
     Exception → 500)
"""

from __future__ import annotations

import traceback

from flask import Flask, jsonify, render_template_string
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


# Shown in the browser when a login link fails. Jinja autoescapes `message`.
LOGIN_FAILURE_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>Login failed</title></head>
<body>
  <main data-error-code="{{ code }}">
    <h1>Login failed</h1>
    <p>{{ message }}</p>
  </main>
</body>
</html>
"""


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development", message_resolver=None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
        message_resolver: Optional callable(code) -> str producing the text
                     shown for INVALID_LINK / INVALID_USER / INVALID_AUTH.

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    # The imports are intentionally unused by name — side effect is the point.
    with app.app_context():
        from backend.app.models import option, transient, user  # noqa: F401

    # ── Front controller ───────────────────────────────────────────────────
    # Registered before the blueprints so login links are handled ahead of
    # any route.
    from backend.app.middleware.login_link_middleware import AutoLogin
    AutoLogin(app, message_resolver=message_resolver)

    _register_blueprints(app)
    _register_error_handlers(app)

    from backend.app.cli import autologin_cli
    app.cli.add_command(autologin_cli)

    return app


def _register_blueprints(app: Flask) -> None:
    """Registers all route blueprints under the /api/v1 prefix."""
    from backend.app.routes.auth import auth_bp
    from backend.app.routes.links import links_bp

    app.register_blueprint(auth_bp,  url_prefix="/api/v1/auth")
    app.register_blueprint(links_bp, url_prefix="/api/v1/links")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      LoginLinkError  → HTML page with the resolved message (403)
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors as MISSING_FIELD /
                        INVALID_FIELD / registered code responses (400)
      HTTPException   → JSON envelope carrying werkzeug's status
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from backend.app.errors import AppError, ErrorCode, LoginLinkError

    @app.errorhandler(LoginLinkError)
    def handle_login_link_error(error: LoginLinkError):
        """Terminal response for a failed login link. No routing follows."""
        body = render_template_string(
            LOGIN_FAILURE_PAGE,
            code=error.code,
            message=error.message,
        )
        return body, error.http_status, {"Content-Type": "text/html; charset=utf-8"}

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.
        """
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST field error is returned ("one error, not many").
        A message that is itself a registered ErrorCode becomes the code.
        """
        messages = error.messages

        field = None
        raw_message = "Invalid input."

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None
                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)
                break
        elif isinstance(messages, list) and messages:
            raw_message = messages[0]

        if raw_message in vars(ErrorCode).values():
            code = raw_message
            raw_message = _code_to_message(code)
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        response_body = {"error": {"code": code, "message": raw_message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({
            "error": {
                "code": (error.name or "HTTP_ERROR").upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        NEVER leave the server in the response body.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself.
    """
    _messages = {
        "INVALID_REDIRECT": "redirect must be a path without whitespace.",
        "INVALID_TTL": "ttl must be between 60 seconds and one year.",
    }
    return _messages.get(code, "Invalid input.")
