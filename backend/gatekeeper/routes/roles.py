"""
routes/roles.py — Role management and permission query handlers.

Every route requires authentication (token or session). Management routes
additionally require a `roles:*` permission; admins pass every check.

Endpoints (url_prefix=/api/roles):
  POST   ""                          roles:create  → 201
  GET    ""                          roles:read    → 200
  GET    /<id>                       roles:read    → 200
  PUT    /<id>                       roles:update  → 200
  DELETE /<id>                       roles:delete  → 200
  POST   /assign                     roles:assign  → 201
  POST   /remove                     roles:assign  → 200
  GET    /user/<user_id>             roles:read    → 200
  GET    /user/<user_id>/permissions roles:read    → 200
  GET    /me/permissions             (any user)    → 200
"""

from __future__ import annotations

from flask import Blueprint, g, request

from backend.gatekeeper.extensions import db
from backend.gatekeeper.middleware.auth_middleware import require_auth
from backend.gatekeeper.middleware.rbac_middleware import require_permission
from backend.gatekeeper.responses import success_response
from backend.gatekeeper.schemas.role_schema import (
    AssignRoleSchema,
    CreateRoleSchema,
    UpdateRoleSchema,
)
from backend.gatekeeper.services import role_service

roles_bp = Blueprint("roles", __name__)


def _body() -> dict:
    return request.get_json(force=True, silent=True) or {}


@roles_bp.route("", methods=["POST"])
@require_auth
@require_permission("roles:create")
def create_role():
    data = CreateRoleSchema().load(_body())
    role = role_service.create_role(
        name=data["name"],
        description=data["description"],
        permissions=data["permissions"],
        session=db.session,
    )
    db.session.commit()
    return success_response(role, "Role created successfully", 201)


@roles_bp.route("", methods=["GET"])
@require_auth
@require_permission("roles:read")
def list_roles():
    return success_response(role_service.list_roles(db.session), "Roles retrieved successfully")


@roles_bp.route("/<int:role_id>", methods=["GET"])
@require_auth
@require_permission("roles:read")
def get_role(role_id: int):
    return success_response(role_service.get_role(role_id, db.session), "Role retrieved successfully")


@roles_bp.route("/<int:role_id>", methods=["PUT"])
@require_auth
@require_permission("roles:update")
def update_role(role_id: int):
    data = UpdateRoleSchema().load(_body())
    role = role_service.update_role(role_id, db.session, **data)
    db.session.commit()
    return success_response(role, "Role updated successfully")


@roles_bp.route("/<int:role_id>", methods=["DELETE"])
@require_auth
@require_permission("roles:delete")
def delete_role(role_id: int):
    role_service.delete_role(role_id, db.session)
    db.session.commit()
    return success_response(message="Role deleted successfully")


@roles_bp.route("/assign", methods=["POST"])
@require_auth
@require_permission("roles:assign")
def assign_role():
    data = AssignRoleSchema().load(_body())
    result = role_service.assign_role_to_user(data["user_id"], data["role_id"], db.session)
    db.session.commit()
    return success_response(result, "Role assigned to user successfully", 201)


@roles_bp.route("/remove", methods=["POST"])
@require_auth
@require_permission("roles:assign")
def remove_role():
    data = AssignRoleSchema().load(_body())
    role_service.remove_role_from_user(data["user_id"], data["role_id"], db.session)
    db.session.commit()
    return success_response(message="Role removed from user successfully")


@roles_bp.route("/user/<int:user_id>", methods=["GET"])
@require_auth
@require_permission("roles:read")
def get_user_roles(user_id: int):
    roles = role_service.get_user_roles(user_id, db.session)
    return success_response(roles, "User roles retrieved successfully")


@roles_bp.route("/user/<int:user_id>/permissions", methods=["GET"])
@require_auth
@require_permission("roles:read")
def get_user_permissions(user_id: int):
    permissions = role_service.get_user_permissions(user_id, db.session)
    return success_response(
        {"permissions": sorted(permissions)},
        "User permissions retrieved successfully",
    )


@roles_bp.route("/me/permissions", methods=["GET"])
@require_auth
def get_my_permissions():
    roles, permissions = role_service.get_user_access(g.user_id, db.session)
    return success_response(
        {
            "roles": sorted(roles),
            "permissions": sorted(permissions),
            "is_admin": role_service.is_admin(permissions, roles),
        },
        "User permissions retrieved successfully",
    )
