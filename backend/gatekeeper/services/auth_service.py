"""
services/auth_service.py — Identity resolution.

Responsibilities:
  - Local registration and credential validation
  - OAuth profile resolution (merge by email or provider identity)
  - Plain user lookup by id (used by the HTTP-session adapter and the gates)
  - Logout (refresh-session revocation)

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - Commits are the route's responsibility — only flush here

Concurrency: two simultaneous registrations for the same email both pass the
existence check; the loser hits the users.email UNIQUE constraint on flush.
That IntegrityError is translated to ConflictError here, never leaked.

Sanitised projection: every user dict returned from this module is built by
sanitize_user(), which never includes password_hash.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.gatekeeper.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from backend.gatekeeper.models.user import User
from backend.gatekeeper.services import token_service
from backend.gatekeeper.services.oauth_service import OAuthProfile
from backend.gatekeeper.services.password_service import hash_password, verify_password

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _flush_or_conflict(session: Session, message: str, code: str) -> None:
    """Flushes pending writes; a unique-constraint violation becomes ConflictError."""
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ConflictError(message, code=code)


def sanitize_user(user: User) -> dict:
    """Serialises a User to a plain dict. Never includes the password hash."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "provider": user.provider,
        "provider_id": user.provider_id,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


# ── Local credentials ──────────────────────────────────────────────────────

def register_user(
        email: str,
        password: str,
        name: str,
        session: Session,
) -> dict:
    """
    Creates a new local (provider='email') account.

    Raises:
      ConflictError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: sanitised user dict
    """
    email = _normalize_email(email)
    duplicate_message = "User with this email already exists"

    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(duplicate_message, code=ErrorCode.DUPLICATE_EMAIL, field="email")

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        provider="email",
    )
    session.add(user)
    _flush_or_conflict(session, duplicate_message, ErrorCode.DUPLICATE_EMAIL)

    logger.info("Registered user %s", user.id)
    return sanitize_user(user)


def login_user(email: str, password: str, session: Session) -> dict:
    """
    Validates email + password.

    Raises:
      UnauthorizedError(INVALID_CREDENTIALS, 401) — unknown email or wrong
        password (same message for both, to avoid account enumeration).
      UnauthorizedError(OAUTH_ACCOUNT, 401) — the account has no password
        because it was created through an OAuth provider.

    Returns: sanitised user dict
    """
    user = session.execute(
        select(User).where(User.email == _normalize_email(email))
    ).scalar_one_or_none()

    if user is None:
        raise UnauthorizedError(
            "Invalid email or password",
            code=ErrorCode.INVALID_CREDENTIALS,
        )

    if not user.password_hash:
        raise UnauthorizedError(
            "Account registered via OAuth. Please use OAuth to login.",
            code=ErrorCode.OAUTH_ACCOUNT,
        )

    if not verify_password(password, user.password_hash):
        logger.info("Failed password login for user %s", user.id)
        raise UnauthorizedError(
            "Invalid email or password",
            code=ErrorCode.INVALID_CREDENTIALS,
        )

    return sanitize_user(user)


# ── OAuth ──────────────────────────────────────────────────────────────────

def resolve_oauth_profile(profile: OAuthProfile, session: Session) -> dict:
    """
    Produces the canonical local user for an externally verified profile.

    Lookup is a single query matching EITHER the email OR the
    (provider, provider_id) pair, so an account first registered locally can
    later be claimed through OAuth with the same email.

      - Match with a different provider / provider_id: provider, provider_id
        and name are overwritten. The stored email is never changed.
      - Match with the same provider and provider_id: nothing is written.
      - No match: a new user is created without a password hash.

    Raises:
      ValidationError(OAUTH_EMAIL_MISSING, 400) — profile has no email
      ConflictError(DUPLICATE_IDENTITY, 409)    — the write lost a uniqueness race

    Returns: sanitised user dict
    """
    if not profile.email:
        raise ValidationError(
            f"No email found in {profile.provider} profile",
            code=ErrorCode.OAUTH_EMAIL_MISSING,
        )

    email = _normalize_email(profile.email)

    user = session.execute(
        select(User)
        .where(
            or_(
                User.email == email,
                and_(
                    User.provider == profile.provider,
                    User.provider_id == profile.provider_id,
                ),
            )
        )
        .order_by(User.id)
        .limit(1)
    ).scalars().first()

    conflict_message = f"This {profile.provider} account is already linked to another user."

    if user is not None:
        if user.provider != profile.provider or user.provider_id != profile.provider_id:
            logger.info(
                "Linking user %s from provider %s to %s",
                user.id, user.provider, profile.provider,
            )
            user.provider = profile.provider
            user.provider_id = profile.provider_id
            user.name = profile.name
            _flush_or_conflict(session, conflict_message, ErrorCode.DUPLICATE_IDENTITY)
        return sanitize_user(user)

    user = User(
        email=email,
        name=profile.name,
        provider=profile.provider,
        provider_id=profile.provider_id,
        password_hash=None,
    )
    session.add(user)
    _flush_or_conflict(session, conflict_message, ErrorCode.DUPLICATE_IDENTITY)

    logger.info("Created user %s from %s profile", user.id, profile.provider)
    return sanitize_user(user)


# ── Lookups ────────────────────────────────────────────────────────────────

def get_user_by_id(user_id: int, session: Session) -> dict | None:
    """Plain lookup. Returns the sanitised user, or None if it does not exist."""
    user = session.get(User, user_id)
    if user is None:
        return None
    return sanitize_user(user)


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the user, raising when it no longer exists.

    Raises:
      NotFoundError(USER_NOT_FOUND, 404)
    """
    user = get_user_by_id(user_id, session)
    if user is None:
        raise NotFoundError(
            "User not found",
            code=ErrorCode.USER_NOT_FOUND,
        )
    return user


# ── Logout ─────────────────────────────────────────────────────────────────

def logout_user(
        user_id: int,
        session: Session,
        refresh_token: str | None = None,
) -> dict:
    """
    Revokes refresh-token sessions for the user.

    With `refresh_token`, only that token's session row is deleted (targeted
    logout). Without it, every `jwt` session of the user is deleted.
    Idempotent: revoking nothing is not an error.

    Returns: {"revoked_sessions": int}
    """
    if refresh_token:
        revoked = token_service.revoke_refresh_token(user_id, refresh_token, session)
    else:
        revoked = token_service.revoke_all_refresh_tokens(user_id, session)
    return {"revoked_sessions": revoked}
