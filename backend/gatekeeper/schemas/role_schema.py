"""
schemas/role_schema.py — Marshmallow schemas for role management endpoints.

Name uniqueness and assignment existence are checked in role_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

ROLE_NAME_RULES = [
    validate.Length(
        min=2,
        max=50,
        error="Role name must be between 2 and 50 characters.",
    ),
    validate.Regexp(
        r"^[a-z0-9_-]+$",
        error="Role name can only contain lowercase letters, numbers, underscores, and hyphens.",
    ),
]

PERMISSION_RULES = validate.Regexp(
    r"^\S+$",
    error="Each permission must be a non-empty string without spaces.",
)


class CreateRoleSchema(Schema):
    """POST /roles"""

    name = fields.Str(required=True, validate=ROLE_NAME_RULES)
    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255),
    )
    permissions = fields.List(
        fields.Str(validate=PERMISSION_RULES),
        load_default=list,
    )


class UpdateRoleSchema(Schema):
    """
    PUT /roles/<id> — every field optional; only the keys present in the body
    are changed.
    """

    name = fields.Str(validate=ROLE_NAME_RULES)
    description = fields.Str(allow_none=True, validate=validate.Length(max=255))
    permissions = fields.List(fields.Str(validate=PERMISSION_RULES))


class AssignRoleSchema(Schema):
    """POST /roles/assign and /roles/remove"""

    user_id = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    role_id = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
