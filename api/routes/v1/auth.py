"""
api/routes/v1/auth.py -- Identity REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create account; returns user + token (201)
  POST /api/v1/auth/login             -- email/password login; returns user + token
  GET  /api/v1/auth/me                -- current user with roles and effective permissions
  POST /api/v1/auth/change-password   -- new password; revokes every token, returns a fresh one
  POST /api/v1/auth/logout            -- revokes the presented token only
  POST /api/v1/auth/refresh-token     -- revokes the presented token, returns a replacement
  POST /api/v1/auth/forgot-password   -- sends a reset link if the email exists; same reply either way
  POST /api/v1/auth/reset-password    -- consumes a reset token; revokes every token, returns a fresh one

Security:
  [H2] login and forgot-password are throttled per lowercased email + client
       address (auth/throttle.py): 5/minute and 3/minute by default.
       register and reset-password are rate-limited per client address (slowapi).
  [C1] IdentityService.login() goes through authenticate_user() for timing
       equalization -- never inline the lookup + verify.
  [M5] Cache-Control: no-store on every response that carries a token.
  forgot-password answers identically for registered and unknown emails.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import PUBLIC_FORM_LIMIT, limiter
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_current_token, get_current_user
from auth.models import AccessToken, User
from auth.service import IdentityService

# Auth policy:
# - POST /api/v1/auth/register:         public
# - POST /api/v1/auth/login:            public
# - POST /api/v1/auth/forgot-password:  public
# - POST /api/v1/auth/reset-password:   public
# - everything else:                    requires a bearer token (get_current_user)
router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If the email exists, password reset instructions have been sent."


def _identity(request: Request) -> IdentityService:
    return request.app.state.identity


def _origin(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(PUBLIC_FORM_LIMIT)
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create an account and sign it in."""
    user, token = _identity(request).register(body.name, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthResponse(message="Registration successful.", user=UserResponse.model_validate(user), token=token)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password.

    Wrong email and wrong password produce the same InvalidCredentials (422)
    so the response does not reveal whether the email is registered.
    """
    user, token = _identity(request).login(body.email, body.password, _origin(request))
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return AuthResponse(message="Login successful.", user=UserResponse.model_validate(user), token=token)


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    _identity(request).request_reset(body.email, _origin(request))
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@limiter.limit(PUBLIC_FORM_LIMIT)
@router.post("/auth/reset-password", response_model=TokenResponse)
def reset_password(request: Request, response: Response, body: ResetPasswordRequest) -> TokenResponse:
    _user, token = _identity(request).reset_password(body.token, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenResponse(message="Password reset successfully.", token=token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the current user with direct roles and effective permissions."""
    graph = request.app.state.graph
    return MeResponse(
        user=UserResponse.model_validate(current_user),
        roles=sorted(graph.role_names(current_user.id)),
        permissions=graph.ordered_permissions(current_user.id),
    )


@router.post("/auth/change-password", response_model=TokenResponse)
def change_password(
    request: Request,
    response: Response,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> TokenResponse:
    token = _identity(request).change_password(current_user, body.current_password, body.password)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenResponse(message="Password updated successfully.", token=token)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, token: AccessToken = Depends(get_current_token)) -> MessageResponse:
    _identity(request).logout(token)
    return MessageResponse(message="Logged out successfully.")


@router.post("/auth/refresh-token", response_model=TokenResponse)
def refresh_token(
    request: Request,
    response: Response,
    token: AccessToken = Depends(get_current_token),
) -> TokenResponse:
    new_token = _identity(request).refresh(token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenResponse(message="Token refreshed successfully.", token=new_token)
