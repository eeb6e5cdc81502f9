"""
tests/unit/conftest.py — A bare Flask app for unit tests that read
current_app.config (token secrets, TTLs, bcrypt rounds, OAuth registry).

No database: extensions are not initialised and no tables exist.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from flask import Flask

# Registers every mapped class so relationship strings resolve when a single
# test module is run on its own.
from backend.gatekeeper.models import (  # noqa: F401
    auth_session,
    http_session,
    role,
    user,
    user_role,
)
from backend.gatekeeper.services.oauth_service import build_provider_registry


@pytest.fixture
def bare_app():
    app = Flask(__name__)
    app.config.update(
        TESTING=True,
        SECRET_KEY="unit-secret",
        JWT_SECRET_KEY="unit-access-secret",
        JWT_REFRESH_SECRET_KEY="unit-refresh-secret",
        JWT_ALGORITHM="HS256",
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(minutes=15),
        JWT_REFRESH_TOKEN_EXPIRES=timedelta(days=7),
        OAUTH_REFRESH_TOKEN_EXPIRES=timedelta(days=30),
        BCRYPT_LOG_ROUNDS=4,
        GOOGLE_CLIENT_ID="gid",
        GOOGLE_CLIENT_SECRET="gsecret",
        FACEBOOK_CLIENT_ID="",
        FACEBOOK_CLIENT_SECRET="",
        GITHUB_CLIENT_ID="ghid",
        GITHUB_CLIENT_SECRET="",
    )
    app.extensions["oauth_providers"] = build_provider_registry(app.config)
    return app


@pytest.fixture
def app_ctx(bare_app):
    with bare_app.app_context():
        yield bare_app
