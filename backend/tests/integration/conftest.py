"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at in-memory SQLite unless TEST_DATABASE_URL names a PostgreSQL
    test database.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)     → sanitised user dict
  - login(client, ...)        → dict with user + tokens (+ session cookie on client)
  - auth_headers(token)       → {"Authorization": "Bearer <token>"}
  - make_role(app, ...)       → role dict, created directly through role_service
  - grant_role(app, ...)      → assigns a role directly through role_service
  - admin_token(app, client)  → access token of the seeded admin

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from backend.gatekeeper import create_app
from backend.gatekeeper.cli import seed_defaults
from backend.gatekeeper.extensions import db as _db
from backend.gatekeeper.services import role_service

DEFAULT_PASSWORD = "Password1"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test. Delete order respects the RESTRICT
    foreign keys on user_roles.
    """
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM user_roles"))
            conn.execute(text("DELETE FROM sessions"))
            conn.execute(text("DELETE FROM http_sessions"))
            conn.execute(text("DELETE FROM roles"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client and cookie jar."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    email: str = "alice@test.com",
    password: str = DEFAULT_PASSWORD,
    name: str = "Alice",
) -> dict:
    """Registers a local account and returns the sanitised user dict."""
    resp = client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "name": name},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(
    client,
    email: str = "alice@test.com",
    password: str = DEFAULT_PASSWORD,
    mode: str = "",
) -> dict:
    """
    Logs in and returns the response data dict.

    mode: "" (tokens + session), "jwt" (tokens only) or "session" (cookie only)
    """
    path = "/api/auth/login" + (f"/{mode}" if mode else "")
    resp = client.post(path, json={"email": email, "password": password})
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_role(app, name: str, permissions: list[str], description: str | None = None) -> dict:
    with app.app_context():
        role = role_service.create_role(name, description, permissions, _db.session)
        _db.session.commit()
        return role


def grant_role(app, user_id: int, role_id: int) -> None:
    with app.app_context():
        role_service.assign_role_to_user(user_id, role_id, _db.session)
        _db.session.commit()


def admin_token(app, client) -> str:
    """Seeds the default roles and admin user, then logs in as that admin."""
    with app.app_context():
        seed_defaults(_db.session)
        _db.session.commit()
    data = login(
        client,
        email=app.config["ADMIN_EMAIL"],
        password=app.config["ADMIN_PASSWORD"],
        mode="jwt",
    )
    return data["access_token"]
