"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call the service functions
  - Commit the DB session once, at the end
  - Return the standard response envelope

No business logic here. No DB queries.
AppError propagates to the global error handler — routes never catch it.

Endpoints (url_prefix=/api/auth):
  POST   /register                      → 201
  POST   /login                         → 200  tokens + session cookie
  POST   /login/jwt                     → 200  tokens only
  POST   /login/session                 → 200  session cookie only
  POST   /refresh                       → 200
  POST   /logout                        → 200  (token or session)
  GET    /me                            → 200  (token or session)
  GET    /oauth/providers               → 200
  GET    /<provider>                    → 302  (503 if not configured)
  GET    /<provider>/callback           → 200  tokens (302 to OAUTH_FRONTEND_REDIRECT if set)
  GET    /<provider>/callback/session   → 200  session cookie
"""

from __future__ import annotations

from urllib.parse import urlencode

from flask import Blueprint, current_app, g, redirect, request, url_for

from backend.gatekeeper.extensions import db
from backend.gatekeeper.http_session import destroy_session, login_session
from backend.gatekeeper.middleware.auth_middleware import require_auth
from backend.gatekeeper.responses import success_response
from backend.gatekeeper.schemas.auth_schema import (
    LoginSchema,
    LogoutSchema,
    RefreshTokenSchema,
    RegisterSchema,
)
from backend.gatekeeper.services import auth_service, oauth_service, token_service

auth_bp = Blueprint("auth", __name__)


def _credentials() -> dict:
    return LoginSchema().load(request.get_json(force=True, silent=True) or {})


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create a local account. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(force=True, silent=True) or {})
    user = auth_service.register_user(
        email=data["email"],
        password=data["password"],
        name=data["name"],
        session=db.session,
    )
    db.session.commit()
    return success_response(user, "User registered successfully", 201)


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Issue tokens AND open an HTTP session."""
    data = _credentials()
    user = auth_service.login_user(data["email"], data["password"], db.session)
    tokens = token_service.issue_token_pair(user["id"], db.session)
    db.session.commit()
    login_session(user["id"])
    return success_response({"user": user, **tokens}, "Login successful")


@auth_bp.route("/login/jwt", methods=["POST"])
def login_jwt():
    """POST /auth/login/jwt — Issue tokens only."""
    data = _credentials()
    user = auth_service.login_user(data["email"], data["password"], db.session)
    tokens = token_service.issue_token_pair(user["id"], db.session)
    db.session.commit()
    return success_response({"user": user, **tokens}, "Login successful (JWT only)")


@auth_bp.route("/login/session", methods=["POST"])
def login_session_only():
    """POST /auth/login/session — Open an HTTP session only."""
    data = _credentials()
    user = auth_service.login_user(data["email"], data["password"], db.session)
    login_session(user["id"])
    return success_response({"user": user}, "Login successful (Session only)")


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Exchange a live refresh token for a new access token."""
    data = RefreshTokenSchema().load(request.get_json(force=True, silent=True) or {})
    result = token_service.refresh_access_token(data["refresh_token"], db.session)
    return success_response(result, "Token refreshed")


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """
    POST /auth/logout — Revoke refresh sessions and destroy the HTTP session.

    Body {"refresh_token": "..."} revokes only that token; an empty body or
    {"all": true} revokes every refresh session of the user.
    """
    data = LogoutSchema().load(request.get_json(force=True, silent=True) or {})
    result = auth_service.logout_user(
        user_id=g.user_id,
        session=db.session,
        refresh_token=None if data["all"] else data["refresh_token"],
    )
    db.session.commit()
    destroy_session()
    return success_response(result, "Logout successful")


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return the current identity. (Auth required.)"""
    return success_response(
        {"user": g.current_user, "auth_type": g.auth_type},
        "User retrieved successfully",
    )


# ── OAuth ──────────────────────────────────────────────────────────────────

@auth_bp.route("/oauth/providers", methods=["GET"])
def oauth_providers():
    """GET /auth/oauth/providers — Names of the configured OAuth providers."""
    providers = oauth_service.get_provider_registry().names()
    return success_response({"providers": providers}, "OAuth providers retrieved")


@auth_bp.route("/<provider>", methods=["GET"])
def oauth_start(provider: str):
    """
    GET /auth/<provider> — Redirect into the provider's consent screen.

    ?mode=session sends the provider back to the session callback instead of
    the token callback.
    """
    oauth_service.require_provider(provider)
    endpoint = (
        "auth.oauth_callback_session"
        if request.args.get("mode") == "session"
        else "auth.oauth_callback"
    )
    return oauth_service.authorize_redirect(
        provider,
        url_for(endpoint, provider=provider, _external=True),
    )


@auth_bp.route("/<provider>/callback", methods=["GET"])
def oauth_callback(provider: str):
    """GET /auth/<provider>/callback — Resolve the profile and issue tokens."""
    profile = oauth_service.fetch_profile(provider)
    user = auth_service.resolve_oauth_profile(profile, db.session)
    tokens = token_service.issue_token_pair(
        user["id"],
        db.session,
        refresh_expires_in=current_app.config["OAUTH_REFRESH_TOKEN_EXPIRES"],
    )
    db.session.commit()

    frontend = current_app.config.get("OAUTH_FRONTEND_REDIRECT")
    if frontend:
        separator = "&" if "?" in frontend else "?"
        return redirect(f"{frontend}{separator}{urlencode(tokens)}")

    label = oauth_service.OAUTH_PROVIDERS[provider]["label"]
    return success_response({"user": user, **tokens}, f"{label} authentication successful")


@auth_bp.route("/<provider>/callback/session", methods=["GET"])
def oauth_callback_session(provider: str):
    """GET /auth/<provider>/callback/session — Resolve the profile and open a session."""
    profile = oauth_service.fetch_profile(provider)
    user = auth_service.resolve_oauth_profile(profile, db.session)
    db.session.commit()
    login_session(user["id"])
    label = oauth_service.OAUTH_PROVIDERS[provider]["label"]
    return success_response({"user": user}, f"{label} authentication successful (Session)")
