"""
services/oauth_service.py — OAuth provider registry and profile normalisation.

The provider registry is built once, in the app factory, from configuration:
a provider is enabled when both its client id and secret are set. The result
is an immutable OAuthProviderRegistry stored in app.extensions and is the
only place routes ask "is google configured?". The environment is never
consulted ad hoc.

Authlib performs the OAuth round trip. Each provider's user-info payload is
normalised into an OAuthProfile, which auth_service.resolve_oauth_profile()
turns into a local User. Nothing here touches the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests
from authlib.integrations.base_client.errors import OAuthError
from flask import current_app

from backend.gatekeeper.errors import (
    ErrorCode,
    NotFoundError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from backend.gatekeeper.extensions import oauth

logger = logging.getLogger(__name__)

GITHUB_PLACEHOLDER_DOMAIN = "github.user"

# Registration order is also the order reported by /auth/oauth/providers.
OAUTH_PROVIDERS: dict[str, dict] = {
    "google": {
        "label": "Google",
        "config_prefix": "GOOGLE",
        "client_kwargs": {"scope": "openid email profile"},
        "server_metadata_url": "https://accounts.google.com/.well-known/openid-configuration",
    },
    "facebook": {
        "label": "Facebook",
        "config_prefix": "FACEBOOK",
        "client_kwargs": {"scope": "email"},
        "api_base_url": "https://graph.facebook.com/",
        "access_token_url": "https://graph.facebook.com/oauth/access_token",
        "authorize_url": "https://www.facebook.com/dialog/oauth",
    },
    "github": {
        "label": "GitHub",
        "config_prefix": "GITHUB",
        "client_kwargs": {"scope": "user:email"},
        "api_base_url": "https://api.github.com/",
        "access_token_url": "https://github.com/login/oauth/access_token",
        "authorize_url": "https://github.com/login/oauth/authorize",
    },
}


# ── Value objects ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OAuthProfile:
    """An externally verified identity, independent of any provider SDK."""

    provider: str
    provider_id: str
    emails: tuple[str, ...] = ()
    display_name: str | None = None
    username: str | None = None

    @property
    def email(self) -> str | None:
        return self.emails[0] if self.emails else None

    @property
    def name(self) -> str:
        return self.display_name or self.username or "User"


@dataclass(frozen=True)
class OAuthProviderRegistry:
    enabled: frozenset[str] = field(default_factory=frozenset)

    def is_enabled(self, provider: str) -> bool:
        return provider in self.enabled

    def names(self) -> list[str]:
        return [name for name in OAUTH_PROVIDERS if name in self.enabled]


# ── Registry ───────────────────────────────────────────────────────────────

def build_provider_registry(config) -> OAuthProviderRegistry:
    """Enables each provider whose CLIENT_ID and CLIENT_SECRET are both set."""
    enabled = set()
    for name, settings in OAUTH_PROVIDERS.items():
        prefix = settings["config_prefix"]
        if config.get(f"{prefix}_CLIENT_ID") and config.get(f"{prefix}_CLIENT_SECRET"):
            enabled.add(name)
    return OAuthProviderRegistry(enabled=frozenset(enabled))


def register_providers(app) -> OAuthProviderRegistry:
    """
    Binds Authlib to the app, registers a client per enabled provider and
    stores the registry at app.extensions["oauth_providers"].
    """
    registry = build_provider_registry(app.config)
    oauth.init_app(app)

    for name in registry.names():
        settings = OAUTH_PROVIDERS[name]
        prefix = settings["config_prefix"]
        kwargs = {
            key: value
            for key, value in settings.items()
            if key not in ("label", "config_prefix")
        }
        oauth.register(
            name=name,
            client_id=app.config[f"{prefix}_CLIENT_ID"],
            client_secret=app.config[f"{prefix}_CLIENT_SECRET"],
            **kwargs,
        )

    app.extensions["oauth_providers"] = registry
    app.logger.info("OAuth providers enabled: %s", ", ".join(registry.names()) or "none")
    return registry


def get_provider_registry() -> OAuthProviderRegistry:
    return current_app.extensions["oauth_providers"]


def require_provider(provider: str) -> None:
    """
    Raises:
      NotFoundError(UNKNOWN_PROVIDER, 404)                  — not google/facebook/github
      ServiceUnavailableError(PROVIDER_NOT_CONFIGURED, 503) — credentials missing
    """
    settings = OAUTH_PROVIDERS.get(provider)
    if settings is None:
        raise NotFoundError(
            f"Unknown OAuth provider '{provider}'.",
            code=ErrorCode.UNKNOWN_PROVIDER,
        )
    if not get_provider_registry().is_enabled(provider):
        prefix = settings["config_prefix"]
        raise ServiceUnavailableError(
            f"{settings['label']} OAuth is not configured. Please set "
            f"{prefix}_CLIENT_ID and {prefix}_CLIENT_SECRET in your environment variables.",
            code=ErrorCode.PROVIDER_NOT_CONFIGURED,
        )


# ── Profile normalisation (pure) ───────────────────────────────────────────

def profile_from_google(userinfo: dict) -> OAuthProfile:
    email = userinfo.get("email")
    verified = userinfo.get("email_verified", True)
    return OAuthProfile(
        provider="google",
        provider_id=str(userinfo["sub"]),
        emails=(email,) if email and verified else (),
        display_name=userinfo.get("name") or userinfo.get("given_name"),
    )


def profile_from_facebook(data: dict) -> OAuthProfile:
    email = data.get("email")
    return OAuthProfile(
        provider="facebook",
        provider_id=str(data["id"]),
        emails=(email,) if email else (),
        display_name=data.get("name"),
    )


def profile_from_github(user: dict, emails: list[dict] | None = None) -> OAuthProfile:
    """
    GitHub may hide the account email. Verified addresses from /user/emails
    are used first (primary first), then the public profile email, and
    finally a placeholder `{login}@github.user` so the account can still be
    created.
    """
    username = user.get("login")

    verified = [
        entry["email"]
        for entry in sorted(emails or [], key=lambda e: not e.get("primary"))
        if entry.get("verified") and entry.get("email")
    ]
    if not verified and user.get("email"):
        verified = [user["email"]]
    if not verified and username:
        verified = [f"{username}@{GITHUB_PLACEHOLDER_DOMAIN}"]

    return OAuthProfile(
        provider="github",
        provider_id=str(user["id"]),
        emails=tuple(verified),
        display_name=user.get("name"),
        username=username,
    )


# ── Authlib round trip ─────────────────────────────────────────────────────

def authorize_redirect(provider: str, redirect_uri: str):
    """Returns the redirect response that starts the provider's consent flow."""
    require_provider(provider)
    return oauth.create_client(provider).authorize_redirect(redirect_uri)


def fetch_profile(provider: str) -> OAuthProfile:
    """
    Completes the code exchange for the current callback request and returns
    the normalised profile.

    Raises:
      UnauthorizedError(OAUTH_FAILED, 401) — the provider rejected the exchange
        or the callback state did not match.
    """
    require_provider(provider)
    client = oauth.create_client(provider)

    try:
        token = client.authorize_access_token()
        if provider == "google":
            userinfo = token.get("userinfo") or client.userinfo(token=token)
            return profile_from_google(dict(userinfo))
        if provider == "facebook":
            resp = client.get("me", params={"fields": "id,name,email"}, token=token)
            resp.raise_for_status()
            return profile_from_facebook(resp.json())
        user_resp = client.get("user", token=token)
        user_resp.raise_for_status()
        emails_resp = client.get("user/emails", token=token)
        emails = emails_resp.json() if emails_resp.ok else []
        return profile_from_github(user_resp.json(), emails)
    except (OAuthError, requests.RequestException, KeyError) as exc:
        logger.warning("OAuth exchange with %s failed: %s", provider, type(exc).__name__)
        raise UnauthorizedError(
            "OAuth authentication failed",
            code=ErrorCode.OAUTH_FAILED,
        ) from exc
