"""
Unit tests for role_service: permission predicates and the branches that
need no real database (mocked session).
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from backend.gatekeeper.errors import AppError, ConflictError, ErrorCode
from backend.gatekeeper.services import role_service


# ── Pure predicates ────────────────────────────────────────────────────────

class TestHasPermission:

    def test_literal_membership(self):
        assert role_service.has_permission({"roles:read"}, "roles:read")
        assert not role_service.has_permission({"roles:read"}, "roles:create")

    def test_system_admin_grants_everything(self):
        assert role_service.has_permission({"system:admin"}, "anything:at-all")

    def test_no_wildcards(self):
        assert not role_service.has_permission({"roles:*"}, "roles:read")

    def test_empty_set(self):
        assert not role_service.has_permission(set(), "roles:read")


class TestIsAdmin:

    def test_sentinel_permission(self):
        assert role_service.is_admin({"system:admin"}, set())

    def test_admin_role_name(self):
        assert role_service.is_admin(set(), {"admin"})

    def test_neither(self):
        assert not role_service.is_admin({"roles:read"}, {"moderator"})


# ── Permission resolution ──────────────────────────────────────────────────

def _roles(*specs):
    return [SimpleNamespace(name=name, permissions=perms) for name, perms in specs]


def test_user_access_is_union_of_role_permissions():
    session = MagicMock()
    roles = _roles(("one", ["p1", "p2"]), ("two", ["p2", "p3"]))

    with patch.object(role_service, "_fetch_user_roles", return_value=roles):
        names, permissions = role_service.get_user_access(1, session)

    assert names == {"one", "two"}
    assert permissions == {"p1", "p2", "p3"}


def test_user_has_permission_short_circuits_on_system_admin():
    session = MagicMock()
    roles = _roles(("root", ["system:admin"]))

    with patch.object(role_service, "_fetch_user_roles", return_value=roles):
        assert role_service.user_has_permission(1, "users:delete", session)


def test_user_has_role_is_literal():
    session = MagicMock()
    roles = _roles(("moderator", []))

    with patch.object(role_service, "_fetch_user_roles", return_value=roles):
        assert role_service.user_has_role(1, "moderator", session)
        assert not role_service.user_has_role(1, "admin", session)


def test_roles_with_null_permissions_are_tolerated():
    session = MagicMock()
    roles = _roles(("legacy", None))

    with patch.object(role_service, "_fetch_user_roles", return_value=roles):
        assert role_service.get_user_permissions(1, session) == set()


def test_fetch_user_roles_raises_for_unknown_user():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        role_service.get_user_roles(404, session)

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND
    assert exc_info.value.http_status == 404


# ── CRUD branches ──────────────────────────────────────────────────────────

def test_create_role_rejects_existing_name():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = SimpleNamespace(id=1)

    with pytest.raises(ConflictError) as exc_info:
        role_service.create_role("editor", None, [], session)

    assert exc_info.value.code == ErrorCode.DUPLICATE_ROLE_NAME
    assert exc_info.value.http_status == 409
    session.add.assert_not_called()


def test_create_role_translates_integrity_error():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None
    session.flush.side_effect = IntegrityError("INSERT", {}, Exception("unique"))

    with pytest.raises(ConflictError):
        role_service.create_role("editor", None, [], session)

    session.rollback.assert_called_once()


def test_delete_role_in_use_is_refused():
    session = MagicMock()
    session.get.return_value = SimpleNamespace(id=3, name="editor")
    session.execute.return_value.scalar_one.return_value = 2

    with pytest.raises(ConflictError) as exc_info:
        role_service.delete_role(3, session)

    assert exc_info.value.code == ErrorCode.ROLE_IN_USE
    session.delete.assert_not_called()


def test_delete_unknown_role_is_404():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        role_service.delete_role(3, session)

    assert exc_info.value.code == ErrorCode.ROLE_NOT_FOUND


def test_update_role_leaves_omitted_fields_alone():
    session = MagicMock()
    role = SimpleNamespace(
        id=3,
        name="editor",
        description="Keep me",
        permissions=["a"],
        created_at=None,
        updated_at=None,
    )
    session.get.return_value = role

    result = role_service.update_role(3, session, permissions=["b", "b", "c"])

    assert result["description"] == "Keep me"
    assert result["permissions"] == ["b", "c"]
    assert role.name == "editor"


def test_remove_unassigned_role_is_404():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        role_service.remove_role_from_user(1, 2, session)

    assert exc_info.value.code == ErrorCode.ROLE_NOT_ASSIGNED
