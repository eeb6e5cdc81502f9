"""
models/user_role.py — UserRole junction table definition.

FK policy: user_id and role_id both ON DELETE RESTRICT — assignments are
removed explicitly, never cascaded.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.gatekeeper.extensions import db


class UserRole(db.Model):
    __tablename__ = "user_roles"

    __table_args__ = (
        # A role cannot be assigned twice to the same user.
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    role_id: Mapped[int] = mapped_column(
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="user_roles",
    )

    role: Mapped["Role"] = relationship(  # noqa: F821
        "Role",
        back_populates="user_roles",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<UserRole id={self.id} "
            f"user_id={self.user_id} "
            f"role_id={self.role_id}>"
        )
