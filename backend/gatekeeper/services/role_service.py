"""
services/role_service.py — Roles, role assignments and permission resolution.

Effective permissions of a user are the set union of the `permissions` of
every role assigned through user_roles. Two predicates sit on top of it:

  user_has_role(user_id, name)             — literal role-name membership
  user_has_permission(user_id, permission) — `system:admin` short-circuits,
                                             then literal membership

Admin bypass used by the authorization gate is the single predicate
is_admin(permissions, roles): the `system:admin` permission OR the role named
`admin`. Both checks are kept for compatibility with existing role data; the
sentinel permission is checked first everywhere.

Permission queries for an unknown user raise NotFoundError instead of
returning an empty set.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.gatekeeper.errors import ConflictError, ErrorCode, NotFoundError
from backend.gatekeeper.models.role import Role
from backend.gatekeeper.models.user import User
from backend.gatekeeper.models.user_role import UserRole

logger = logging.getLogger(__name__)

ADMIN_PERMISSION = "system:admin"
ADMIN_ROLE = "admin"

_UNSET = object()


# ── Pure predicates ────────────────────────────────────────────────────────

def has_permission(permissions: set[str], permission: str) -> bool:
    """`system:admin` grants every permission; otherwise literal membership."""
    if ADMIN_PERMISSION in permissions:
        return True
    return permission in permissions


def is_admin(permissions: set[str], roles: set[str]) -> bool:
    """Admin bypass: the sentinel permission first, then the `admin` role name."""
    return ADMIN_PERMISSION in permissions or ADMIN_ROLE in roles


# ── Private helpers ────────────────────────────────────────────────────────

def _dedupe(permissions: Iterable[str]) -> list[str]:
    """Drops duplicates while keeping first-seen order."""
    return list(dict.fromkeys(permissions))


def _get_role_or_404(role_id: int, session: Session) -> Role:
    role = session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found", code=ErrorCode.ROLE_NOT_FOUND)
    return role


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code=ErrorCode.USER_NOT_FOUND)
    return user


def _require_unique_name(name: str, session: Session) -> None:
    existing = session.execute(
        select(Role).where(Role.name == name)
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(
            "Role with this name already exists",
            code=ErrorCode.DUPLICATE_ROLE_NAME,
            field="name",
        )


def _flush_or_conflict(session: Session, message: str, code: str) -> None:
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ConflictError(message, code=code)


def _fetch_user_roles(user_id: int, session: Session) -> list[Role]:
    _get_user_or_404(user_id, session)
    return list(
        session.execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        ).scalars().all()
    )


def _build_role_dict(role: Role) -> dict:
    """Serialises a Role to a plain dict. No business logic."""
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "permissions": list(role.permissions or []),
        "created_at": role.created_at.isoformat() if role.created_at else None,
        "updated_at": role.updated_at.isoformat() if role.updated_at else None,
    }


# ── Role CRUD ──────────────────────────────────────────────────────────────

def create_role(
        name: str,
        description: str | None,
        permissions: Iterable[str],
        session: Session,
) -> dict:
    """
    Raises:
      ConflictError(DUPLICATE_ROLE_NAME, 409)
    """
    _require_unique_name(name, session)

    role = Role(
        name=name,
        description=description,
        permissions=_dedupe(permissions),
    )
    session.add(role)
    _flush_or_conflict(session, "Role with this name already exists", ErrorCode.DUPLICATE_ROLE_NAME)

    logger.info("Created role %s (%s)", role.id, role.name)
    return _build_role_dict(role)


def list_roles(session: Session) -> list[dict]:
    """All roles ordered by name, each with its number of assigned users."""
    rows = session.execute(
        select(Role, func.count(UserRole.id))
        .outerjoin(UserRole, UserRole.role_id == Role.id)
        .group_by(Role.id)
        .order_by(Role.name)
    ).all()

    return [
        {**_build_role_dict(role), "user_count": count}
        for role, count in rows
    ]


def get_role(role_id: int, session: Session) -> dict:
    """
    Returns the role with the users it is assigned to.

    Raises:
      NotFoundError(ROLE_NOT_FOUND, 404)
    """
    role = _get_role_or_404(role_id, session)

    users = session.execute(
        select(User)
        .join(UserRole, UserRole.user_id == User.id)
        .where(UserRole.role_id == role_id)
        .order_by(User.id)
    ).scalars().all()

    return {
        **_build_role_dict(role),
        "users": [
            {"id": u.id, "name": u.name, "email": u.email}
            for u in users
        ],
    }


def update_role(
        role_id: int,
        session: Session,
        name: str | None = None,
        description=_UNSET,
        permissions: Iterable[str] | None = None,
) -> dict:
    """
    Partial update. Only the arguments that are passed are changed;
    `description=None` clears the description.

    Raises:
      NotFoundError(ROLE_NOT_FOUND, 404)
      ConflictError(DUPLICATE_ROLE_NAME, 409) — renaming onto an existing name
    """
    role = _get_role_or_404(role_id, session)

    if name is not None and name != role.name:
        _require_unique_name(name, session)
        role.name = name
    if description is not _UNSET:
        role.description = description
    if permissions is not None:
        role.permissions = _dedupe(permissions)

    _flush_or_conflict(session, "Role with this name already exists", ErrorCode.DUPLICATE_ROLE_NAME)
    return _build_role_dict(role)


def delete_role(role_id: int, session: Session) -> None:
    """
    Deletes a role that nobody holds.

    Raises:
      NotFoundError(ROLE_NOT_FOUND, 404)
      ConflictError(ROLE_IN_USE, 409) — at least one user still has the role
    """
    role = _get_role_or_404(role_id, session)

    assigned = session.execute(
        select(func.count(UserRole.id)).where(UserRole.role_id == role_id)
    ).scalar_one()
    if assigned > 0:
        raise ConflictError(
            "Cannot delete role that is assigned to users. "
            "Please remove all user assignments first.",
            code=ErrorCode.ROLE_IN_USE,
        )

    session.delete(role)
    session.flush()
    logger.info("Deleted role %s", role_id)


# ── Assignments ────────────────────────────────────────────────────────────

def assign_role_to_user(user_id: int, role_id: int, session: Session) -> dict:
    """
    Raises:
      NotFoundError(USER_NOT_FOUND / ROLE_NOT_FOUND, 404)
      ConflictError(ROLE_ALREADY_ASSIGNED, 409)
    """
    user = _get_user_or_404(user_id, session)
    role = _get_role_or_404(role_id, session)

    existing = session.execute(
        select(UserRole).where(
            UserRole.user_id == user_id,
            UserRole.role_id == role_id,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(
            "User already has this role",
            code=ErrorCode.ROLE_ALREADY_ASSIGNED,
        )

    session.add(UserRole(user_id=user_id, role_id=role_id))
    _flush_or_conflict(session, "User already has this role", ErrorCode.ROLE_ALREADY_ASSIGNED)

    logger.info("Assigned role %s to user %s", role.name, user_id)
    return {
        "user": {"id": user.id, "name": user.name, "email": user.email},
        "role": _build_role_dict(role),
    }


def remove_role_from_user(user_id: int, role_id: int, session: Session) -> None:
    """
    Raises:
      NotFoundError(ROLE_NOT_ASSIGNED, 404)
    """
    user_role = session.execute(
        select(UserRole).where(
            UserRole.user_id == user_id,
            UserRole.role_id == role_id,
        )
    ).scalar_one_or_none()
    if user_role is None:
        raise NotFoundError(
            "User does not have this role",
            code=ErrorCode.ROLE_NOT_ASSIGNED,
        )

    session.delete(user_role)
    session.flush()
    logger.info("Removed role %s from user %s", role_id, user_id)


# ── Permission resolution ──────────────────────────────────────────────────

def get_user_roles(user_id: int, session: Session) -> list[dict]:
    """Raises NotFoundError(USER_NOT_FOUND) for an unknown user."""
    return [_build_role_dict(role) for role in _fetch_user_roles(user_id, session)]


def get_user_access(user_id: int, session: Session) -> tuple[set[str], set[str]]:
    """
    Returns (role_names, permissions) for the user in one round trip.
    Raises NotFoundError(USER_NOT_FOUND) for an unknown user.
    """
    roles = _fetch_user_roles(user_id, session)
    role_names = {role.name for role in roles}
    permissions: set[str] = set()
    for role in roles:
        permissions.update(role.permissions or [])
    return role_names, permissions


def get_user_permissions(user_id: int, session: Session) -> set[str]:
    return get_user_access(user_id, session)[1]


def user_has_role(user_id: int, role_name: str, session: Session) -> bool:
    return role_name in get_user_access(user_id, session)[0]


def user_has_permission(user_id: int, permission: str, session: Session) -> bool:
    return has_permission(get_user_permissions(user_id, session), permission)
