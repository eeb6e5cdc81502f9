"""
tests/integration/test_roles.py — Integration tests for role management and
the authorization gate.

Endpoints covered:
  POST/GET        /roles                         roles:create / roles:read
  GET/PUT/DELETE  /roles/<id>                    roles:read / update / delete
  POST            /roles/assign, /roles/remove   roles:assign
  GET             /roles/user/<id>               roles:read
  GET             /roles/user/<id>/permissions   roles:read
  GET             /roles/me/permissions          any authenticated user

401 vs 403: no identity is 401; an identity without the permission is 403.
"""

from __future__ import annotations

from sqlalchemy import func, select

from backend.gatekeeper.cli import DEFAULT_ROLES
from backend.gatekeeper.extensions import db
from backend.gatekeeper.models.role import Role

from .conftest import admin_token, auth_headers, grant_role, login, make_role, register


def _user_token(client, email: str = "alice@test.com", name: str = "Alice") -> tuple[dict, str]:
    user = register(client, email=email, name=name)
    token = login(client, email=email, mode="jwt")["access_token"]
    return user, token


# ═══════════════════════════════════════════════════════════════════════════
# Role CRUD
# ═══════════════════════════════════════════════════════════════════════════

class TestRoleCrud:

    def test_create_role_returns_201(self, app, client):
        token = admin_token(app, client)
        resp = client.post("/api/roles", json={
            "name": "editor",
            "description": "Edits content",
            "permissions": ["posts:update", "posts:read", "posts:read"],
        }, headers=auth_headers(token))

        assert resp.status_code == 201
        role = resp.get_json()["data"]
        assert role["name"] == "editor"
        assert role["description"] == "Edits content"
        assert role["permissions"] == ["posts:update", "posts:read"]

    def test_create_duplicate_role_returns_409(self, app, client):
        token = admin_token(app, client)
        payload = {"name": "editor", "permissions": []}
        client.post("/api/roles", json=payload, headers=auth_headers(token))

        resp = client.post("/api/roles", json=payload, headers=auth_headers(token))
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "DUPLICATE_ROLE_NAME"
        assert "already exists" in body["message"]

    def test_create_role_rejects_bad_name(self, app, client):
        token = admin_token(app, client)
        resp = client.post("/api/roles", json={"name": "Bad Name"}, headers=auth_headers(token))
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "name"

    def test_list_roles_ordered_with_user_count(self, app, client):
        token = admin_token(app, client)
        resp = client.get("/api/roles", headers=auth_headers(token))

        assert resp.status_code == 200
        roles = resp.get_json()["data"]
        names = [r["name"] for r in roles]
        assert names == sorted(DEFAULT_ROLES)
        counts = {r["name"]: r["user_count"] for r in roles}
        assert counts == {"admin": 1, "moderator": 0, "user": 0}

    def test_get_role_includes_assigned_users(self, app, client):
        token = admin_token(app, client)
        roles = client.get("/api/roles", headers=auth_headers(token)).get_json()["data"]
        admin_role = next(r for r in roles if r["name"] == "admin")

        resp = client.get(f"/api/roles/{admin_role['id']}", headers=auth_headers(token))
        assert resp.status_code == 200
        users = resp.get_json()["data"]["users"]
        assert [u["email"] for u in users] == [app.config["ADMIN_EMAIL"]]

    def test_get_unknown_role_returns_404(self, app, client):
        token = admin_token(app, client)
        resp = client.get("/api/roles/99999", headers=auth_headers(token))
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "ROLE_NOT_FOUND"

    def test_update_role_is_partial(self, app, client):
        token = admin_token(app, client)
        role = make_role(app, "editor", ["posts:read"], description="Old")

        resp = client.put(
            f"/api/roles/{role['id']}",
            json={"permissions": ["posts:read", "posts:update"]},
            headers=auth_headers(token),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["name"] == "editor"
        assert data["description"] == "Old"
        assert data["permissions"] == ["posts:read", "posts:update"]

    def test_update_role_can_clear_description(self, app, client):
        token = admin_token(app, client)
        role = make_role(app, "editor", [], description="Old")

        resp = client.put(
            f"/api/roles/{role['id']}",
            json={"description": None},
            headers=auth_headers(token),
        )
        assert resp.get_json()["data"]["description"] is None

    def test_rename_onto_existing_name_returns_409(self, app, client):
        token = admin_token(app, client)
        role = make_role(app, "editor", [])

        resp = client.put(
            f"/api/roles/{role['id']}",
            json={"name": "moderator"},
            headers=auth_headers(token),
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DUPLICATE_ROLE_NAME"

    def test_delete_unassigned_role(self, app, client):
        token = admin_token(app, client)
        role = make_role(app, "editor", [])

        resp = client.delete(f"/api/roles/{role['id']}", headers=auth_headers(token))
        assert resp.status_code == 200
        assert client.get(f"/api/roles/{role['id']}", headers=auth_headers(token)).status_code == 404

    def test_delete_assigned_role_is_refused(self, app, client):
        token = admin_token(app, client)
        user = register(client, email="bob@test.com", name="Bob")
        role = make_role(app, "editor", ["posts:read"])
        grant_role(app, user["id"], role["id"])

        resp = client.delete(f"/api/roles/{role['id']}", headers=auth_headers(token))
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "ROLE_IN_USE"
        assert "Cannot delete role" in body["message"]

        still_there = client.get(f"/api/roles/{role['id']}", headers=auth_headers(token))
        assert still_there.status_code == 200
        assert [u["id"] for u in still_there.get_json()["data"]["users"]] == [user["id"]]


# ═══════════════════════════════════════════════════════════════════════════
# Assignments
# ═══════════════════════════════════════════════════════════════════════════

class TestAssignments:

    def test_assign_and_remove_role(self, app, client):
        token = admin_token(app, client)
        user = register(client, email="bob@test.com", name="Bob")
        role = make_role(app, "editor", ["posts:read"])
        payload = {"user_id": user["id"], "role_id": role["id"]}

        resp = client.post("/api/roles/assign", json=payload, headers=auth_headers(token))
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["user"]["id"] == user["id"]
        assert data["role"]["name"] == "editor"

        resp = client.post("/api/roles/remove", json=payload, headers=auth_headers(token))
        assert resp.status_code == 200

        roles = client.get(f"/api/roles/user/{user['id']}", headers=auth_headers(token))
        assert roles.get_json()["data"] == []

    def test_assign_twice_returns_409(self, app, client):
        token = admin_token(app, client)
        user = register(client, email="bob@test.com", name="Bob")
        role = make_role(app, "editor", [])
        payload = {"user_id": user["id"], "role_id": role["id"]}

        client.post("/api/roles/assign", json=payload, headers=auth_headers(token))
        resp = client.post("/api/roles/assign", json=payload, headers=auth_headers(token))
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ROLE_ALREADY_ASSIGNED"

    def test_assign_to_unknown_user_returns_404(self, app, client):
        token = admin_token(app, client)
        role = make_role(app, "editor", [])

        resp = client.post(
            "/api/roles/assign",
            json={"user_id": 99999, "role_id": role["id"]},
            headers=auth_headers(token),
        )
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "USER_NOT_FOUND"

    def test_remove_unassigned_role_returns_404(self, app, client):
        token = admin_token(app, client)
        user = register(client, email="bob@test.com", name="Bob")
        role = make_role(app, "editor", [])

        resp = client.post(
            "/api/roles/remove",
            json={"user_id": user["id"], "role_id": role["id"]},
            headers=auth_headers(token),
        )
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "ROLE_NOT_ASSIGNED"

    def test_assign_rejects_string_ids(self, app, client):
        token = admin_token(app, client)
        resp = client.post(
            "/api/roles/assign",
            json={"user_id": "1", "role_id": "1"},
            headers=auth_headers(token),
        )
        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
# Permission resolution and the authorization gate
# ═══════════════════════════════════════════════════════════════════════════

class TestPermissions:

    def test_effective_permissions_are_the_union(self, app, client):
        user, token = _user_token(client)
        first = make_role(app, "role-one", ["p1", "p2"])
        second = make_role(app, "role-two", ["p2", "p3"])
        grant_role(app, user["id"], first["id"])
        grant_role(app, user["id"], second["id"])

        resp = client.get("/api/roles/me/permissions", headers=auth_headers(token))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["permissions"] == ["p1", "p2", "p3"]
        assert data["roles"] == ["role-one", "role-two"]
        assert data["is_admin"] is False

    def test_user_without_roles_has_no_permissions(self, client):
        _, token = _user_token(client)
        data = client.get("/api/roles/me/permissions", headers=auth_headers(token)).get_json()["data"]
        assert data == {"roles": [], "permissions": [], "is_admin": False}

    def test_missing_permission_returns_403(self, client):
        _, token = _user_token(client)
        resp = client.post("/api/roles", json={"name": "editor"}, headers=auth_headers(token))

        assert resp.status_code == 403
        body = resp.get_json()
        assert body["code"] == "FORBIDDEN"
        assert body["message"] == "Access denied. Required permission: roles:create"

    def test_unauthenticated_request_returns_401(self, client):
        resp = client.get("/api/roles")
        assert resp.status_code == 401

    def test_single_permission_grants_only_its_route(self, app, client):
        user, token = _user_token(client)
        reader = make_role(app, "reader", ["roles:read"])
        grant_role(app, user["id"], reader["id"])

        assert client.get("/api/roles", headers=auth_headers(token)).status_code == 200
        resp = client.post("/api/roles", json={"name": "editor"}, headers=auth_headers(token))
        assert resp.status_code == 403

    def test_system_admin_permission_satisfies_every_check(self, app, client):
        user, token = _user_token(client)
        superuser = make_role(app, "superuser", ["system:admin"])
        grant_role(app, user["id"], superuser["id"])

        resp = client.post("/api/roles", json={"name": "editor"}, headers=auth_headers(token))
        assert resp.status_code == 201
        assert client.get("/api/roles", headers=auth_headers(token)).status_code == 200

    def test_admin_role_name_satisfies_every_check(self, app, client):
        user, token = _user_token(client)
        admin = make_role(app, "admin", [])
        grant_role(app, user["id"], admin["id"])

        resp = client.post("/api/roles", json={"name": "editor"}, headers=auth_headers(token))
        assert resp.status_code == 201

        data = client.get("/api/roles/me/permissions", headers=auth_headers(token)).get_json()["data"]
        assert data["is_admin"] is True

    def test_session_authenticated_user_passes_authorization(self, app, client):
        user = register(client)
        reader = make_role(app, "reader", ["roles:read"])
        grant_role(app, user["id"], reader["id"])
        login(client, mode="session")

        assert client.get("/api/roles").status_code == 200

    def test_permissions_of_another_user(self, app, client):
        token = admin_token(app, client)
        user = register(client, email="bob@test.com", name="Bob")
        role = make_role(app, "editor", ["posts:update", "posts:read"])
        grant_role(app, user["id"], role["id"])

        resp = client.get(f"/api/roles/user/{user['id']}/permissions", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["permissions"] == ["posts:read", "posts:update"]

    def test_permissions_of_unknown_user_returns_404(self, app, client):
        token = admin_token(app, client)
        resp = client.get("/api/roles/user/99999/permissions", headers=auth_headers(token))
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "USER_NOT_FOUND"

    def test_user_roles_listing_requires_roles_read(self, client):
        user, token = _user_token(client)
        resp = client.get(f"/api/roles/user/{user['id']}", headers=auth_headers(token))
        assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════
# Seed command
# ═══════════════════════════════════════════════════════════════════════════

class TestSeed:

    def test_seed_rejects_admin_password_over_72_bytes(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_PASSWORD", "a1" * 40)

        result = app.test_cli_runner().invoke(args=["seed"])

        assert result.exit_code != 0
        assert "at most 72 bytes" in result.output
        with app.app_context():
            assert db.session.execute(select(func.count(Role.id))).scalar_one() == 0

    def test_seed_command_is_idempotent(self, app, client):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["seed"])
        assert first.exit_code == 0, first.output
        assert "Created roles: admin, user, moderator" in first.output

        second = runner.invoke(args=["seed"])
        assert second.exit_code == 0, second.output
        assert "Default roles already exist" in second.output

        token = login(
            client,
            email=app.config["ADMIN_EMAIL"],
            password=app.config["ADMIN_PASSWORD"],
            mode="jwt",
        )["access_token"]
        roles = client.get("/api/roles", headers=auth_headers(token)).get_json()["data"]
        assert len(roles) == 3
        assert next(r for r in roles if r["name"] == "admin")["user_count"] == 1
