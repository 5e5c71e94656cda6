"""
rbac/dependencies.py -- FastAPI Depends() factories that attach one Requirement to a route.

    @router.get("/admin/users")
    async def list_users(user: User = Depends(require_permission("users.read"))): ...

The returned dependency first resolves the bearer token through
auth.dependencies.get_current_user (401 on failure), then enforces the single
requirement against app.state.graph (403 on failure), then hands back the User.

Layer rule: no imports from api/. May import fastapi because this module is
part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.dependencies import get_current_user
from auth.models import User
from rbac.access import PermissionRequirement, Requirement, RoleRequirement, enforce


def require(requirement: Requirement) -> Callable[..., User]:
    def dependency(request: Request, user: User = Depends(get_current_user)) -> User:
        enforce(request.app.state.graph, user.id, requirement)
        return user

    dependency.__name__ = f"require_{type(requirement).__name__.lower()}_{requirement.name}"
    return dependency


def require_role(name: str) -> Callable[..., User]:
    return require(RoleRequirement(name))


def require_permission(name: str) -> Callable[..., User]:
    return require(PermissionRequirement(name))
