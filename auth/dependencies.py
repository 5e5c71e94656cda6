"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token authentication.

One auth method: the Authorization: Bearer <token> header carrying an opaque
token issued by IdentityService. The token is hashed and looked up; expired
or unknown tokens are rejected.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises Unauthenticated (401).
get_current_token() returns the AccessToken record the request authenticated
with, for logout and refresh.

Role and permission checks live in rbac/dependencies.py and run after
get_current_user(), so a missing token always yields 401 before any 403.

Layer rule: no imports from api/ or rbac/. fastapi is allowed here.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import AccessToken, User
from auth.tokens import hash_token, is_expired
from core.errors import Unauthenticated


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def try_get_current_user(request: Request) -> User | None:
    """Resolve the bearer token to a User. Never raises.

    On success the AccessToken record is stashed on request.state.access_token
    and its last_used_at is stamped.
    """
    raw = bearer_token(request)
    if raw is None:
        return None

    user_store = request.app.state.user_store
    record = user_store.get_token_by_hash(hash_token(raw))
    if record is None or is_expired(record.expires_at):
        return None
    user = user_store.get_by_id(record.user_id)
    if user is None:
        return None

    user_store.touch_token(record.id)
    request.state.access_token = record
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises Unauthenticated (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise Unauthenticated()
    return user


def get_current_token(request: Request, user: User = Depends(get_current_user)) -> AccessToken:
    """Return the token record the current request authenticated with."""
    return request.state.access_token
