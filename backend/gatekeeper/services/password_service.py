"""
services/password_service.py — Password hashing and verification.

bcrypt with a configurable cost factor (BCRYPT_LOG_ROUNDS, default 12).
The raw password is never stored and never logged.
"""

from __future__ import annotations

import bcrypt
from flask import current_app, has_app_context

from backend.gatekeeper.errors import ErrorCode, ValidationError

DEFAULT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of its input; bcrypt>=5 refuses longer ones.
MAX_PASSWORD_BYTES = 72


def _configured_rounds() -> int:
    if has_app_context():
        return current_app.config.get("BCRYPT_LOG_ROUNDS", DEFAULT_ROUNDS)
    return DEFAULT_ROUNDS


def hash_password(password: str, rounds: int | None = None) -> str:
    """
    Returns a salted bcrypt hash of `password` as a UTF-8 string.

    Raises:
      ValidationError(INVALID_FIELD, 400) — password longer than 72 UTF-8 bytes
    """
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes long.",
            code=ErrorCode.INVALID_FIELD,
            field="password",
        )
    if rounds is None:
        rounds = _configured_rounds()
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Constant-time comparison of `password` against a stored bcrypt hash.

    Returns False (never raises) for a missing or malformed hash, so callers
    can treat every failure as "invalid credentials".
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # "Invalid salt" — the stored value is not a bcrypt hash.
        return False
