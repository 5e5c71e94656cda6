"""
API request and response models for RoleGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
rbac/models.py, which own the internal domain representation. Route handlers
map between the two.

Separation of concerns: domain models = internal truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 255


# ---------------------------------------------------------------------------
# Request models -- identity
# ---------------------------------------------------------------------------


class _EmailBody(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        """Trim and lowercase before EmailStr runs so stored emails are canonical."""
        return value.strip().lower() if isinstance(value, str) else value


class _NewPasswordBody(BaseModel):
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    password_confirmation: str = Field(max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password_confirmation")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        # info.data lacks "password" when that field already failed validation.
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("The password confirmation does not match.")
        return value


class RegisterRequest(_EmailBody, _NewPasswordBody):
    """Request body for POST /api/v1/auth/register."""

    name: str = Field(min_length=1, max_length=255)


class LoginRequest(_EmailBody):
    """Request body for POST /api/v1/auth/login."""

    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class ChangePasswordRequest(_NewPasswordBody):
    """Request body for POST /api/v1/auth/change-password."""

    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class ForgotPasswordRequest(_EmailBody):
    """Request body for POST /api/v1/auth/forgot-password."""


class ResetPasswordRequest(_EmailBody, _NewPasswordBody):
    """Request body for POST /api/v1/auth/reset-password."""

    token: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Request models -- admin
# ---------------------------------------------------------------------------


class NameRequest(BaseModel):
    """Request body for creating or renaming a role or permission."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)


class RoleNameRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    role: str = Field(min_length=1, max_length=255)


class PermissionNameRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    permission: str = Field(min_length=1, max_length=255)


class RoleNamesRequest(BaseModel):
    """Full replacement set for a user's roles."""

    roles: list[str] = Field(min_length=1)


class PermissionNamesRequest(BaseModel):
    """Full replacement set of permission names."""

    permissions: list[str] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response models -- identity
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. The password hash is never serialized."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    email: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AuthResponse(BaseModel):
    """Response for register and login: the user plus a fresh bearer token."""

    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    token: str
    token_type: str = "Bearer"


class TokenResponse(BaseModel):
    """Response for change-password, refresh-token, and reset-password."""

    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    token_type: str = "Bearer"


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse
    roles: list[str]
    permissions: list[str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Response models -- admin
# ---------------------------------------------------------------------------


class UserAccessResponse(BaseModel):
    """Authorization view of a user: direct roles and effective permissions."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    email: str
    roles: list[str]
    permissions: list[str]


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str
    permissions: list[str]


class PermissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    name: str


class UserAccessEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    data: UserAccessResponse


class RoleEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    data: RoleResponse


class PermissionEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    data: PermissionResponse


class PaginationMeta(BaseModel):
    """Numbers describing one page. from/to are null on an empty page."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    current_page: int
    per_page: int
    total: int
    last_page: int
    from_: Optional[int] = Field(default=None, alias="from")
    to: Optional[int] = None
    has_more_pages: bool


class PageLinks(BaseModel):
    model_config = ConfigDict(frozen=True)

    first: str
    last: str
    prev: Optional[str] = None
    next: Optional[str] = None


class UserPage(BaseModel):
    """Response for GET /api/v1/admin/users."""

    model_config = ConfigDict(frozen=True)

    items: list[UserAccessResponse]
    pagination: PaginationMeta
    links: PageLinks


class RolePage(BaseModel):
    """Response for GET /api/v1/admin/roles."""

    model_config = ConfigDict(frozen=True)

    items: list[RoleResponse]
    pagination: PaginationMeta
    links: PageLinks


class PermissionPage(BaseModel):
    """Response for GET /api/v1/admin/permissions."""

    model_config = ConfigDict(frozen=True)

    items: list[PermissionResponse]
    pagination: PaginationMeta
    links: PageLinks


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    fields: field path -> messages, on validation failures.
    retry_after: seconds, on 429 responses.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, list[str]]] = None
    retry_after: Optional[int] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
