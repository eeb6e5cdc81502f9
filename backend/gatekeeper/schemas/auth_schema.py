"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats.
  - services/auth_service.py: DUPLICATE_EMAIL checks (cross-entity: require a
    DB lookup — not a schema concern).

IMPORTANT: All schemas inherit from marshmallow.Schema directly so they can be
used in unit tests without a Flask app context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, pre_load, validate, validates

from backend.gatekeeper.services.password_service import MAX_PASSWORD_BYTES


def _normalize_email(data):
    """Trims and lower-cases `email` before field validation runs."""
    if isinstance(data, dict) and isinstance(data.get("email"), str):
        data = {**data, "email": data["email"].strip().lower()}
    return data


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      email    : trimmed and lower-cased, valid email format, at most 255 chars
      password : 8 chars to 72 UTF-8 bytes, at least one letter and one digit
      name     : 1–100 chars
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    name = fields.Str(
        required=True,
        validate=validate.Length(
            min=1,
            max=100,
            error="Name must be between 1 and 100 characters.",
        ),
    )

    @pre_load
    def normalize_email(self, data, **kwargs):
        return _normalize_email(data)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login, /auth/login/jwt, /auth/login/session

    Credential correctness is checked in auth_service.py (401).
    """

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True)

    @pre_load
    def normalize_email(self, data, **kwargs):
        return _normalize_email(data)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh"""

    refresh_token = fields.Str(required=True, validate=validate.Length(min=1))


class LogoutSchema(Schema):
    """
    POST /auth/logout — the body is optional.

    refresh_token : revoke only this token's session (targeted logout)
    all           : revoke every refresh session of the user (default when no
                    refresh_token is given)
    """

    refresh_token = fields.Str(load_default=None, validate=validate.Length(min=1))
    all = fields.Bool(load_default=False)
