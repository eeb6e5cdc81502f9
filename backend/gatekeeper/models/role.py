"""
models/role.py — Role table definition.

A role is a named bundle of permission strings ("roles:read", "system:admin").
Permissions are stored as a JSON array; order is irrelevant and duplicates
are collapsed by role_service before writing.

FK policy: user_roles.role_id ON DELETE RESTRICT — a role cannot be deleted
while assigned (role_service checks first and reports ROLE_IN_USE).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.gatekeeper.extensions import db


class Role(db.Model):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Always reassigned, never mutated in place: plain JSON columns do not
    # track in-place list changes.
    permissions: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user_roles: Mapped[list["UserRole"]] = relationship(  # noqa: F821
        "UserRole",
        back_populates="role",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Role id={self.id} name={self.name!r}>"
