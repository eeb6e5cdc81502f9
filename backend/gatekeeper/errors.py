"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the Gatekeeper API uses a code defined here.
Service, middleware and route code raise one of the typed subclasses below;
the global error handlers in gatekeeper/__init__.py turn them into the
response envelope:

    {"success": false, "message": "...", "code": "...", "errors": [...]}

Rules:
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
  - Messages never contain passwords, password hashes, or token values.
  - Error codes are a versioned contract. Messages may be improved at any time.
"""

from __future__ import annotations


class AppError(Exception):

    http_status: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
            self,
            message: str,
            code: str | None = None,
            http_status: int | None = None,
            field: str | None = None,
            errors: list[dict] | None = None,
    ) -> None:
        super().__init__(message)
        self.message     = message
        self.code        = code or self.default_code
        if http_status is not None:
            self.http_status = http_status
        self.field       = field   # which request field caused the error
        self.errors      = errors

    def to_dict(self) -> dict:
        payload = {
            "success": False,
            "message": self.message,
            "code":    self.code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.errors:
            payload["errors"] = self.errors
        return payload

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ValidationError(AppError):
    """Malformed input (400)."""
    http_status = 400
    default_code = "INVALID_FIELD"


class UnauthorizedError(AppError):
    """Bad credentials, missing or unusable token, no session (401)."""
    http_status = 401
    default_code = "UNAUTHORIZED"


class InvalidTokenError(UnauthorizedError):
    """Token signature or expiry failure (401)."""
    default_code = "TOKEN_INVALID"


class ForbiddenError(AppError):
    """Authenticated, but lacking the required permission or role (403)."""
    http_status = 403
    default_code = "FORBIDDEN"


class NotFoundError(AppError):
    http_status = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """Uniqueness violation: duplicate email, role name or role assignment (409)."""
    http_status = 409
    default_code = "CONFLICT"


class ServiceUnavailableError(AppError):
    """A feature that depends on missing configuration, e.g. an OAuth provider (503)."""
    http_status = 503
    default_code = "SERVICE_UNAVAILABLE"


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    OAUTH_EMAIL_MISSING        = "OAUTH_EMAIL_MISSING"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_IDENTITY         = "DUPLICATE_IDENTITY"
    DUPLICATE_ROLE_NAME        = "DUPLICATE_ROLE_NAME"
    ROLE_ALREADY_ASSIGNED      = "ROLE_ALREADY_ASSIGNED"
    ROLE_IN_USE                = "ROLE_IN_USE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    ROLE_NOT_FOUND             = "ROLE_NOT_FOUND"
    ROLE_NOT_ASSIGNED          = "ROLE_NOT_ASSIGNED"
    RESOURCE_NOT_FOUND         = "RESOURCE_NOT_FOUND"
    UNKNOWN_PROVIDER           = "UNKNOWN_PROVIDER"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    OAUTH_ACCOUNT              = "OAUTH_ACCOUNT"          # 401
    OAUTH_FAILED               = "OAUTH_FAILED"           # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401
    NOT_AUTHENTICATED          = "NOT_AUTHENTICATED"      # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors ──────────────────────────────────────────────────────
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"     # 405
    PROVIDER_NOT_CONFIGURED    = "PROVIDER_NOT_CONFIGURED"  # 503
    INTERNAL_ERROR             = "INTERNAL_ERROR"         # 500
