"""
gatekeeper/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and Alembic can import the models without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Authlib) and the server-side
     HTTP session store
  3. Register the route blueprints under /api plus GET /health
  4. Register global error handlers (AppError → envelope, Exception → 500)
  5. Register CORS headers and the `flask seed` command

Logging: the app logger is named after this package, so every
logging.getLogger(__name__) in services and middleware propagates to it and
shares its level (LOG_LEVEL).
"""

from __future__ import annotations

import traceback
from datetime import datetime, timezone

from flask import Flask, jsonify, request
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO").upper())

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.gatekeeper.extensions import db
    from backend.gatekeeper.http_session import SqlSessionInterface
    from backend.gatekeeper.services.oauth_service import register_providers

    db.init_app(app)
    app.session_interface = SqlSessionInterface()
    register_providers(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Populates SQLAlchemy's MetaData for db.create_all() and Alembic.
    with app.app_context():
        from backend.gatekeeper.models import (  # noqa: F401
            auth_session,
            http_session,
            role,
            user,
            user_role,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    from backend.gatekeeper.cli import register_commands
    register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    from backend.gatekeeper.routes.auth import auth_bp
    from backend.gatekeeper.routes.roles import roles_bp
    from backend.gatekeeper.routes.users import users_bp

    app.register_blueprint(auth_bp,  url_prefix="/api/auth")
    app.register_blueprint(roles_bp, url_prefix="/api/roles")
    app.register_blueprint(users_bp, url_prefix="/api/users")

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 200


def _flatten_schema_errors(messages, prefix: str = "") -> list[dict]:
    """
    Turns marshmallow's nested messages into a flat list:
        {"permissions": {0: ["Not a valid string."]}}
        → [{"field": "permissions.0", "message": "Not a valid string."}]
    """
    errors = []
    if isinstance(messages, dict):
        for key, value in messages.items():
            name = str(key) if key != "_schema" else ""
            path = f"{prefix}.{name}" if prefix and name else (prefix or name)
            errors.extend(_flatten_schema_errors(value, path))
    elif isinstance(messages, list):
        for message in messages:
            if isinstance(message, (dict, list)):
                errors.extend(_flatten_schema_errors(message, prefix))
            else:
                errors.append({"field": prefix or None, "message": str(message)})
    else:
        errors.append({"field": prefix or None, "message": str(messages)})
    return errors


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

      AppError               → its own status and code
      marshmallow errors     → 400, MISSING_FIELD or INVALID_FIELD, `errors` list
      HTTPException          → envelope with the werkzeug status (404, 405, ...)
      Exception              → 500 INTERNAL_ERROR; traceback logged, never returned

    Every handler that can follow a failed write rolls the DB session back so
    a half-applied request leaves nothing behind.
    """
    from backend.gatekeeper.errors import AppError, ErrorCode
    from backend.gatekeeper.extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        db.session.rollback()
        if error.http_status >= 500:
            app.logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(error: SchemaValidationError):
        errors = _flatten_schema_errors(error.messages)
        first = errors[0] if errors else {"field": None, "message": "Invalid input."}

        if first["message"].startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        body = {
            "success": False,
            "message": "Validation failed",
            "code": code,
            "errors": errors,
        }
        if first["field"]:
            body["field"] = first["field"]
        return jsonify(body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        codes = {
            404: ErrorCode.RESOURCE_NOT_FOUND,
            405: ErrorCode.METHOD_NOT_ALLOWED,
        }
        message = "Route not found" if error.code == 404 else error.description
        return jsonify({
            "success": False,
            "message": message,
            "code": codes.get(error.code, error.name.upper().replace(" ", "_")),
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        db.session.rollback()
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "success": False,
            "message": "Internal server error",
            "code": ErrorCode.INTERNAL_ERROR,
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for the configured front-end origin.

    Credentials are allowed so the browser sends the session cookie, which
    means the allowed origin must be echoed exactly, never "*".
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed = app.config.get("CORS_ORIGIN")

        if origin and allowed and origin == allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response
