"""
models/user.py — User table definition.

No business logic. No imports from services or routes.

Invariant (enforced by a CHECK constraint and by auth_service):
  provider = 'email'  ⇒ password_hash IS NOT NULL
  provider <> 'email' ⇒ provider_id IS NOT NULL
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.gatekeeper.extensions import db

PROVIDERS = ("email", "google", "facebook", "github")


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        # One local account per external identity.
        UniqueConstraint("provider", "provider_id", name="uq_users_provider_identity"),
        CheckConstraint(
            "provider IN ('email', 'google', 'facebook', 'github')",
            name="ck_users_provider",
        ),
        CheckConstraint(
            "provider <> 'email' OR password_hash IS NOT NULL",
            name="ck_users_email_provider_has_password",
        ),
        CheckConstraint(
            "provider = 'email' OR provider_id IS NOT NULL",
            name="ck_users_oauth_provider_has_id",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    # NULL for OAuth-only accounts.
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    provider: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="email",
        server_default="email",
    )

    provider_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

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
        back_populates="user",
    )

    auth_sessions: Mapped[list["AuthSession"]] = relationship(  # noqa: F821
        "AuthSession",
        back_populates="user",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r} provider={self.provider!r}>"
