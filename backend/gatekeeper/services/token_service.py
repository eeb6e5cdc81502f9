"""
services/token_service.py — Access and refresh token lifecycle.

Token design:
  - Access token:  JWT, HS256, signed with JWT_SECRET_KEY,
                   TTL JWT_ACCESS_TOKEN_EXPIRES (15 min).
  - Refresh token: JWT, HS256, signed with JWT_REFRESH_SECRET_KEY (a different
                   secret), TTL JWT_REFRESH_TOKEN_EXPIRES (7 days) for password
                   logins or OAUTH_REFRESH_TOKEN_EXPIRES (30 days) for OAuth.
  - Both carry only the user id (`sub`), plus `iat`, `exp` and a random `jti`
    so two tokens issued in the same second never collide.
  - Each refresh token is paired with an AuthSession row holding its SHA-256
    digest. Logout deletes the row; /auth/refresh requires it to exist.

Known limitation: access tokens are not persisted. After logout an access
token stays valid until its natural expiry; only the refresh flow is revoked.

Layer rules:
  - current_app.config is read for secrets and TTLs only.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from backend.gatekeeper.errors import ErrorCode, InvalidTokenError
from backend.gatekeeper.models.auth_session import SESSION_TYPE_JWT, AuthSession

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string. Used for refresh token storage."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def _encode(user_id: int, secret: str, expires_in: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_in,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, secret, algorithm=_algorithm())


def _decode(token: str, secret: str, invalid_code: str, kind: str) -> dict:
    """
    Verifies signature and expiry and returns {"user_id": int}.

    Raises InvalidTokenError with TOKEN_EXPIRED when the signature is good but
    `exp` has passed, and with `invalid_code` for everything else.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[_algorithm()])
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError(
            f"The {kind} token has expired.",
            code=ErrorCode.TOKEN_EXPIRED,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, invalid claims, etc.
        raise InvalidTokenError(
            f"The {kind} token is invalid or has been tampered with.",
            code=invalid_code,
        )

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise InvalidTokenError(
            f"The {kind} token does not carry a valid user id.",
            code=invalid_code,
        )

    return {"user_id": user_id}


# ── Token generation / verification ────────────────────────────────────────

def generate_access_token(user_id: int, expires_in: timedelta | None = None) -> str:
    if expires_in is None:
        expires_in = current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    return _encode(user_id, current_app.config["JWT_SECRET_KEY"], expires_in)


def generate_refresh_token(user_id: int, expires_in: timedelta | None = None) -> str:
    if expires_in is None:
        expires_in = current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]
    return _encode(user_id, current_app.config["JWT_REFRESH_SECRET_KEY"], expires_in)


def verify_access_token(token: str) -> dict:
    """Returns {"user_id": int}. Raises InvalidTokenError."""
    return _decode(
        token,
        current_app.config["JWT_SECRET_KEY"],
        ErrorCode.TOKEN_INVALID,
        "access",
    )


def verify_refresh_token(token: str) -> dict:
    """Returns {"user_id": int}. Raises InvalidTokenError."""
    return _decode(
        token,
        current_app.config["JWT_REFRESH_SECRET_KEY"],
        ErrorCode.REFRESH_TOKEN_INVALID,
        "refresh",
    )


# ── Refresh-token sessions ─────────────────────────────────────────────────

def issue_token_pair(
        user_id: int,
        session: Session,
        refresh_expires_in: timedelta | None = None,
) -> dict:
    """
    Issues an access + refresh token pair and records the refresh token.

    Returns: {"access_token": "...", "refresh_token": "..."}
    """
    if refresh_expires_in is None:
        refresh_expires_in = current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]

    access_token = generate_access_token(user_id)
    refresh_token = generate_refresh_token(user_id, refresh_expires_in)

    session.add(AuthSession(
        user_id=user_id,
        token_hash=_hash_token(refresh_token),
        expires_at=datetime.now(timezone.utc) + refresh_expires_in,
        type=SESSION_TYPE_JWT,
    ))
    # flush so the row exists before we return; commit is the route's job
    session.flush()

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
    }


def refresh_access_token(raw_refresh_token: str, session: Session) -> dict:
    """
    Exchanges a live refresh token for a new access token.

    The refresh token is not rotated; it stays usable until it expires or is
    revoked by logout.

    Raises:
      InvalidTokenError(TOKEN_EXPIRED / REFRESH_TOKEN_INVALID) — bad signature,
        expired, or no matching session row (revoked).

    Returns: {"access_token": "..."}
    """
    claims = verify_refresh_token(raw_refresh_token)

    record = session.execute(
        select(AuthSession).where(
            AuthSession.token_hash == _hash_token(raw_refresh_token),
            AuthSession.type == SESSION_TYPE_JWT,
        )
    ).scalar_one_or_none()

    now = datetime.now(timezone.utc)
    if (
        record is None
        or record.user_id != claims["user_id"]
        or _as_utc(record.expires_at) <= now
    ):
        raise InvalidTokenError(
            "The refresh token is invalid, expired, or has been revoked.",
            code=ErrorCode.REFRESH_TOKEN_INVALID,
        )

    return {"access_token": generate_access_token(record.user_id)}


def revoke_refresh_token(user_id: int, raw_refresh_token: str, session: Session) -> int:
    """
    Narrow logout: deletes the single session row matching this user and token.
    Returns the number of rows removed (0 when already revoked).
    """
    result = session.execute(
        delete(AuthSession).where(
            AuthSession.user_id == user_id,
            AuthSession.token_hash == _hash_token(raw_refresh_token),
            AuthSession.type == SESSION_TYPE_JWT,
        )
    )
    session.flush()
    removed = result.rowcount or 0
    logger.debug("Revoked %d refresh session(s) for user %s", removed, user_id)
    return removed


def revoke_all_refresh_tokens(user_id: int, session: Session) -> int:
    """
    Broad logout: deletes every `jwt` session row for the user.
    Returns the number of rows removed (0 when none existed).
    """
    result = session.execute(
        delete(AuthSession).where(
            AuthSession.user_id == user_id,
            AuthSession.type == SESSION_TYPE_JWT,
        )
    )
    session.flush()
    removed = result.rowcount or 0
    logger.info("Revoked all refresh sessions for user %s (%d row(s))", user_id, removed)
    return removed
