"""
models/http_session.py — Server-side HTTP session store.

Backs the cookie session interface in gatekeeper/http_session.py. The cookie
only carries `sid`; the payload (the logged-in user id, plus OAuth state
written by Authlib during a redirect round trip) is JSON in `data`.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.gatekeeper.extensions import db


class HttpSession(db.Model):
    __tablename__ = "http_sessions"

    sid: Mapped[str] = mapped_column(String(64), primary_key=True)

    data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<HttpSession sid={self.sid[:8]}… expires_at={self.expires_at}>"
