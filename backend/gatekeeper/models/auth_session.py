"""
models/auth_session.py — Refresh-token session records ("sessions" table).

One row per issued refresh token. Rows are created on every token-issuing
login or OAuth callback, deleted on logout, and never updated.

token_hash stores the SHA-256 hex digest of the refresh token, never the
token itself; token_service hashes before every read and write.

HTTP-cookie sessions do NOT create rows here — they live in http_sessions.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.gatekeeper.extensions import db

SESSION_TYPE_JWT = "jwt"


class AuthSession(db.Model):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SESSION_TYPE_JWT,
        server_default=SESSION_TYPE_JWT,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="auth_sessions",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<AuthSession id={self.id} "
            f"user_id={self.user_id} "
            f"type={self.type!r}>"
        )
