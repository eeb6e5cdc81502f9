"""
middleware/rbac_middleware.py — Authorization gate.

Decorators that sit BELOW an authentication decorator:

    @roles_bp.route("/", methods=["POST"])
    @require_auth
    @require_permission("roles:create")
    def create_role(): ...

  - No identity on flask.g → 401 (authentication failure, not 403).
  - Identity present but insufficient → 403 naming the requirement.
  - Admin bypass (role_service.is_admin: `system:admin` permission or the
    `admin` role) satisfies every check in this module.

The user's roles and permissions are resolved once per request and cached on
flask.g, so stacked decorators do not re-query.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Iterable

from flask import g

from backend.gatekeeper.errors import ErrorCode, ForbiddenError, UnauthorizedError
from backend.gatekeeper.extensions import db
from backend.gatekeeper.services import role_service

logger = logging.getLogger(__name__)


def _current_access() -> tuple[set[str], set[str]]:
    """Returns (role_names, permissions) for g.user_id."""
    user_id = getattr(g, "user_id", None)
    if user_id is None:
        raise UnauthorizedError(
            "Authentication required",
            code=ErrorCode.NOT_AUTHENTICATED,
        )

    cached = getattr(g, "user_access", None)
    if cached is None:
        cached = role_service.get_user_access(user_id, db.session)
        g.user_access = cached
    return cached


def _deny(message: str) -> None:
    logger.info("Access denied for user %s: %s", getattr(g, "user_id", None), message)
    raise ForbiddenError(f"Access denied. {message}", code=ErrorCode.FORBIDDEN)


def _check(predicate: Callable[[set[str], set[str]], bool], message: str) -> None:
    roles, permissions = _current_access()
    if role_service.is_admin(permissions, roles):
        return
    if not predicate(roles, permissions):
        _deny(message)


def _guard(predicate: Callable[[set[str], set[str]], bool], message: str) -> Callable:
    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            _check(predicate, message)
            return f(*args, **kwargs)

        return decorated

    return decorator


def require_permission(permission: str) -> Callable:
    return _guard(
        lambda roles, perms: role_service.has_permission(perms, permission),
        f"Required permission: {permission}",
    )


def require_any_permission(permissions: Iterable[str]) -> Callable:
    permissions = list(permissions)
    return _guard(
        lambda roles, perms: any(role_service.has_permission(perms, p) for p in permissions),
        f"Required one of: {', '.join(permissions)}",
    )


def require_role(role_name: str) -> Callable:
    return _guard(
        lambda roles, perms: role_name in roles,
        f"Required role: {role_name}",
    )


def require_any_role(role_names: Iterable[str]) -> Callable:
    role_names = list(role_names)
    return _guard(
        lambda roles, perms: any(name in roles for name in role_names),
        f"Required one of: {', '.join(role_names)}",
    )
