"""
core/errors.py -- Failure taxonomy shared by every RoleGate layer.

Each failure kind is an exception class carrying a machine-readable code and
the HTTP status the boundary layer should answer with. Services and
dependencies raise these; api/main.py registers one exception handler for the
AccessError base class and renders every subclass into the ErrorResponse
envelope.

Every failure is terminal for the current request -- nothing in auth/ or
rbac/ catches and retries them.

Layer rule: core/ is the kernel. This module may not import from api/, auth/
or rbac/.
"""

from __future__ import annotations


class AccessError(Exception):
    """Base class for all expected RoleGate failures."""

    code: str = "error"
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccessError):
    """Malformed or missing input, reported with field-level detail.

    fields maps a dotted field path ("roles.1", "password") to its messages,
    the same shape api/main.py produces for pydantic request errors.
    """

    code = "validation_error"
    status_code = 422
    default_message = "Request validation failed."

    def __init__(self, message: str | None = None, fields: dict[str, list[str]] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or {}


class InvalidCredentials(AccessError):
    """Login failure. The message is identical for unknown email and wrong password."""

    code = "invalid_credentials"
    status_code = 422
    default_message = "Invalid credentials."


class Unauthenticated(AccessError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class Forbidden(AccessError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have access to this resource."


class Conflict(AccessError):
    code = "conflict"
    status_code = 409
    default_message = "The name has already been taken."


class ProtectedEntity(AccessError):
    """Attempted deletion of a system role or permission."""

    code = "protected_entity"
    status_code = 422
    default_message = "System roles and permissions cannot be deleted."


class NotFound(AccessError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class RateLimited(AccessError):
    """Too many attempts for one identity. retry_after is in whole seconds."""

    code = "too_many_requests"
    status_code = 429
    default_message = "Too many attempts. Please try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
