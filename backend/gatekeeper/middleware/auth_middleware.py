"""
middleware/auth_middleware.py — Authentication gate.

Three decorators, one per verification mode:

  @require_jwt      Bearer token only
  @require_session  server-side HTTP session only
  @require_auth     either: token first, then session (the common case)

On success each one attaches to flask.g:
  g.user_id      int
  g.current_user sanitised user dict (never contains the password hash)
  g.auth_type    "jwt" | "session"

Either-mode precedence: when a request carries a bearer token AND a session
cookie, the token wins. Any token failure (malformed header, bad signature,
expired, user gone) falls through silently to the session check; 401 is only
raised when both mechanisms fail.

Strict responsibility boundary:
  - Authentication (401) only. Permission and role checks (403) live in
    rbac_middleware.
  - Raises AppError subclasses; the global error handler renders them.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

from flask import g, request

from backend.gatekeeper.errors import ErrorCode, UnauthorizedError
from backend.gatekeeper.extensions import db
from backend.gatekeeper.http_session import destroy_session, session_user_id
from backend.gatekeeper.services import auth_service, token_service

logger = logging.getLogger(__name__)

AUTH_TYPE_JWT = "jwt"
AUTH_TYPE_SESSION = "session"


def _attach(user: dict, auth_type: str) -> None:
    g.user_id = user["id"]
    g.current_user = user
    g.auth_type = auth_type


def _authenticate_jwt() -> dict:
    """
    Verifies the bearer token and returns the sanitised user.

    Raises:
      UnauthorizedError(TOKEN_MISSING)             — no usable Authorization header
      InvalidTokenError(TOKEN_INVALID / EXPIRED)   — verification failed
      UnauthorizedError(TOKEN_INVALID)             — token's user no longer exists
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError(
            "No token provided. Please include a Bearer token in the Authorization header.",
            code=ErrorCode.TOKEN_MISSING,
        )

    raw_token = auth_header[len("Bearer "):].strip()
    if not raw_token:
        raise UnauthorizedError(
            "No token provided. Please include a Bearer token in the Authorization header.",
            code=ErrorCode.TOKEN_MISSING,
        )

    claims = token_service.verify_access_token(raw_token)

    user = auth_service.get_user_by_id(claims["user_id"], db.session)
    if user is None:
        raise UnauthorizedError("User not found", code=ErrorCode.TOKEN_INVALID)
    return user


def _authenticate_session() -> dict:
    """
    Resolves the user bound to the HTTP session.

    Raises:
      UnauthorizedError(NOT_AUTHENTICATED) — no session, or its user was deleted
    """
    user_id = session_user_id()
    if user_id is not None:
        user = auth_service.get_user_by_id(user_id, db.session)
        if user is not None:
            return user
        # Stale session: the user behind it no longer exists.
        destroy_session()

    raise UnauthorizedError(
        "Not authenticated. Please log in.",
        code=ErrorCode.NOT_AUTHENTICATED,
    )


def authenticate_request() -> str:
    """
    Either-mode authentication. Attaches the identity to flask.g and returns
    the auth type. Separated from the decorator so it can be called directly.
    """
    try:
        _attach(_authenticate_jwt(), AUTH_TYPE_JWT)
        return AUTH_TYPE_JWT
    except UnauthorizedError as exc:
        logger.debug("Token authentication failed (%s); trying session", exc.code)

    try:
        _attach(_authenticate_session(), AUTH_TYPE_SESSION)
        return AUTH_TYPE_SESSION
    except UnauthorizedError:
        pass

    raise UnauthorizedError(
        "Not authenticated. Please provide a valid token or log in.",
        code=ErrorCode.NOT_AUTHENTICATED,
    )


def require_jwt(f: Callable) -> Callable:
    """
    Route decorator: bearer token only.

    Usage:
        @bp.route("/things")
        @require_jwt
        def list_things():
            user_id = g.user_id
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _attach(_authenticate_jwt(), AUTH_TYPE_JWT)
        return f(*args, **kwargs)

    return decorated


def require_session(f: Callable) -> Callable:
    """Route decorator: server-side HTTP session only."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _attach(_authenticate_session(), AUTH_TYPE_SESSION)
        return f(*args, **kwargs)

    return decorated


def require_auth(f: Callable) -> Callable:
    """Route decorator: token or session, token first."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        authenticate_request()
        return f(*args, **kwargs)

    return decorated
