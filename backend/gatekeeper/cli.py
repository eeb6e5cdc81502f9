"""
cli.py — `flask seed`: default roles and the initial administrator.

Idempotent: roles and the admin user are only created when missing, and the
admin role is only assigned when the admin user does not already hold it.
Re-running the command never changes permissions of an existing role.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, current_app
from sqlalchemy import select

from backend.gatekeeper.errors import AppError
from backend.gatekeeper.extensions import db
from backend.gatekeeper.models.role import Role
from backend.gatekeeper.models.user import User
from backend.gatekeeper.models.user_role import UserRole
from backend.gatekeeper.services.password_service import hash_password
from backend.gatekeeper.services.role_service import ADMIN_PERMISSION, ADMIN_ROLE

logger = logging.getLogger(__name__)

DEFAULT_ROLES: dict[str, dict] = {
    ADMIN_ROLE: {
        "description": "Administrator with full access",
        "permissions": [
            "roles:create",
            "roles:read",
            "roles:update",
            "roles:delete",
            "roles:assign",
            "users:create",
            "users:read",
            "users:update",
            "users:delete",
            ADMIN_PERMISSION,
        ],
    },
    "user": {
        "description": "Standard user",
        "permissions": [],
    },
    "moderator": {
        "description": "Moderator with user management access",
        "permissions": ["users:read", "users:update"],
    },
}


def seed_defaults(session) -> dict:
    """
    Creates missing default roles and the admin user, then links them.
    Flushes only; the caller commits.

    Returns: {"created_roles": [...], "admin_created": bool, "admin_assigned": bool}
    """
    created_roles = []
    roles = {}
    for name, settings in DEFAULT_ROLES.items():
        role = session.execute(select(Role).where(Role.name == name)).scalar_one_or_none()
        if role is None:
            role = Role(
                name=name,
                description=settings["description"],
                permissions=list(settings["permissions"]),
            )
            session.add(role)
            created_roles.append(name)
            logger.info("Created default role: %s", name)
        roles[name] = role
    session.flush()

    email = current_app.config["ADMIN_EMAIL"].strip().lower()
    admin = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    admin_created = admin is None
    if admin_created:
        admin = User(
            email=email,
            password_hash=hash_password(current_app.config["ADMIN_PASSWORD"]),
            name=current_app.config["ADMIN_NAME"],
            provider="email",
        )
        session.add(admin)
        session.flush()
        logger.info("Created admin user: %s", email)

    admin_role = roles[ADMIN_ROLE]
    already_assigned = session.execute(
        select(UserRole.id).where(
            UserRole.user_id == admin.id,
            UserRole.role_id == admin_role.id,
        )
    ).first() is not None
    if not already_assigned:
        session.add(UserRole(user_id=admin.id, role_id=admin_role.id))
        session.flush()
        logger.info("Assigned admin role to %s", email)

    return {
        "created_roles": created_roles,
        "admin_created": admin_created,
        "admin_assigned": not already_assigned,
    }


def register_commands(app: Flask) -> None:

    @app.cli.command("seed")
    def seed_command():
        """Create the default roles and the admin user."""
        try:
            result = seed_defaults(db.session)
        except AppError as exc:
            db.session.rollback()
            raise click.ClickException(exc.message)
        db.session.commit()

        if result["created_roles"]:
            click.echo(f"Created roles: {', '.join(result['created_roles'])}")
        else:
            click.echo("Default roles already exist")
        if result["admin_created"]:
            click.echo(f"Created admin user {current_app.config['ADMIN_EMAIL']}")
        if result["admin_assigned"]:
            click.echo("Assigned admin role to admin user")
        click.echo("Seed complete")
