"""
api/routes/v1/admin.py -- Admin REST endpoints over roles, permissions, and user assignments.

Routes (each declares exactly one requirement):
  GET    /api/v1/admin/ping                                 role:admin
  GET    /api/v1/admin/users                                permission:users.read
  GET    /api/v1/admin/roles                                permission:users.read
  GET    /api/v1/admin/permissions                          permission:users.read
  POST   /api/v1/admin/roles                                permission:users.manage
  PATCH  /api/v1/admin/roles/{role_id}                      permission:users.manage
  DELETE /api/v1/admin/roles/{role_id}                      permission:users.manage
  POST   /api/v1/admin/roles/{role_id}/sync-permissions     permission:users.manage
  POST   /api/v1/admin/permissions                          permission:users.manage
  PATCH  /api/v1/admin/permissions/{permission_id}          permission:users.manage
  DELETE /api/v1/admin/permissions/{permission_id}          permission:users.manage
  POST   /api/v1/admin/users/{user_id}/assign-role          permission:users.manage
  POST   /api/v1/admin/users/{user_id}/remove-role          permission:users.manage
  POST   /api/v1/admin/users/{user_id}/sync-roles           permission:users.manage
  POST   /api/v1/admin/users/{user_id}/give-permission      permission:users.manage
  POST   /api/v1/admin/users/{user_id}/revoke-permission    permission:users.manage
  POST   /api/v1/admin/users/{user_id}/sync-permissions     permission:users.manage

Listings accept page (>= 1), per_page (1..100, default 15), search, sort_by,
and sort_dir (asc|desc). Out-of-range values are rejected here with 422
before the listing query runs.

Every mutation answers with {"message", "data"} where data is re-read after
the commit.
"""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    MessageResponse,
    NameRequest,
    PermissionEnvelope,
    PermissionNameRequest,
    PermissionNamesRequest,
    PermissionPage,
    PermissionResponse,
    RoleEnvelope,
    RoleNameRequest,
    RoleNamesRequest,
    RolePage,
    RoleResponse,
    UserAccessEnvelope,
    UserAccessResponse,
    UserPage,
)
from auth.models import User
from core.listing import DEFAULT_PER_PAGE, MAX_PER_PAGE, PageRequest
from rbac.admin import AdminService
from rbac.dependencies import require_permission, require_role

router = APIRouter()

require_admin_role = require_role("admin")
require_users_read = require_permission("users.read")
require_users_manage = require_permission("users.manage")


def _admin(request: Request) -> AdminService:
    return request.app.state.admin


def _page_request(
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PER_PAGE, ge=1, le=MAX_PER_PAGE),
    search: Optional[str] = Query(None, max_length=255),
    sort_by: Optional[str] = Query(None, max_length=255),
    sort_dir: Optional[Literal["asc", "desc"]] = Query(None),
) -> PageRequest:
    return PageRequest(page=page, per_page=per_page, search=search or None, sort_by=sort_by or None, sort_dir=sort_dir)


def _link_for(request: Request):
    return lambda page: str(request.url.include_query_params(page=page))


# ---------------------------------------------------------------------------
# Ping and listings
# ---------------------------------------------------------------------------


@router.get("/admin/ping", response_model=MessageResponse)
def ping(current_user: User = Depends(require_admin_role)) -> MessageResponse:
    return MessageResponse(message="Admin access granted.")


@router.get("/admin/users", response_model=UserPage)
def list_users(
    request: Request,
    page_request: PageRequest = Depends(_page_request),
    current_user: User = Depends(require_users_read),
) -> UserPage:
    """Users with their roles and effective permissions. Search: name, email. Sort: id (default), name, email."""
    page = _admin(request).list_users(page_request).map(UserAccessResponse.model_validate)
    return UserPage.model_validate(page.to_payload(_link_for(request)))


@router.get("/admin/roles", response_model=RolePage)
def list_roles(
    request: Request,
    page_request: PageRequest = Depends(_page_request),
    current_user: User = Depends(require_users_read),
) -> RolePage:
    """Roles with their permissions. Search: name. Sort: name (default), id."""
    page = _admin(request).list_roles(page_request).map(RoleResponse.model_validate)
    return RolePage.model_validate(page.to_payload(_link_for(request)))


@router.get("/admin/permissions", response_model=PermissionPage)
def list_permissions(
    request: Request,
    page_request: PageRequest = Depends(_page_request),
    current_user: User = Depends(require_users_read),
) -> PermissionPage:
    """Permissions. Search: name. Sort: name (default), id."""
    page = _admin(request).list_permissions(page_request).map(PermissionResponse.model_validate)
    return PermissionPage.model_validate(page.to_payload(_link_for(request)))


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.post("/admin/roles", response_model=RoleEnvelope, status_code=201)
def create_role(
    request: Request,
    body: NameRequest,
    current_user: User = Depends(require_users_manage),
) -> RoleEnvelope:
    role = _admin(request).create_role(body.name)
    return RoleEnvelope(message="Role created successfully.", data=RoleResponse.model_validate(role))


@router.patch("/admin/roles/{role_id}", response_model=RoleEnvelope)
def update_role(
    request: Request,
    role_id: int,
    body: NameRequest,
    current_user: User = Depends(require_users_manage),
) -> RoleEnvelope:
    role = _admin(request).rename_role(role_id, body.name)
    return RoleEnvelope(message="Role updated successfully.", data=RoleResponse.model_validate(role))


@router.delete("/admin/roles/{role_id}", response_model=MessageResponse)
def delete_role(
    request: Request,
    role_id: int,
    current_user: User = Depends(require_users_manage),
) -> MessageResponse:
    _admin(request).delete_role(role_id)
    return MessageResponse(message="Role deleted successfully.")


@router.post("/admin/roles/{role_id}/sync-permissions", response_model=RoleEnvelope)
def sync_role_permissions(
    request: Request,
    role_id: int,
    body: PermissionNamesRequest,
    current_user: User = Depends(require_users_manage),
) -> RoleEnvelope:
    role = _admin(request).sync_role_permissions(role_id, body.permissions)
    return RoleEnvelope(message="Role permissions synced successfully.", data=RoleResponse.model_validate(role))


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@router.post("/admin/permissions", response_model=PermissionEnvelope, status_code=201)
def create_permission(
    request: Request,
    body: NameRequest,
    current_user: User = Depends(require_users_manage),
) -> PermissionEnvelope:
    permission = _admin(request).create_permission(body.name)
    return PermissionEnvelope(
        message="Permission created successfully.",
        data=PermissionResponse.model_validate(permission),
    )


@router.patch("/admin/permissions/{permission_id}", response_model=PermissionEnvelope)
def update_permission(
    request: Request,
    permission_id: int,
    body: NameRequest,
    current_user: User = Depends(require_users_manage),
) -> PermissionEnvelope:
    permission = _admin(request).rename_permission(permission_id, body.name)
    return PermissionEnvelope(
        message="Permission updated successfully.",
        data=PermissionResponse.model_validate(permission),
    )


@router.delete("/admin/permissions/{permission_id}", response_model=MessageResponse)
def delete_permission(
    request: Request,
    permission_id: int,
    current_user: User = Depends(require_users_manage),
) -> MessageResponse:
    _admin(request).delete_permission(permission_id)
    return MessageResponse(message="Permission deleted successfully.")


# ---------------------------------------------------------------------------
# User assignments
# ---------------------------------------------------------------------------


def _access_envelope(message: str, access) -> UserAccessEnvelope:
    return UserAccessEnvelope(message=message, data=UserAccessResponse.model_validate(access))


@router.post("/admin/users/{user_id}/assign-role", response_model=UserAccessEnvelope)
def assign_role(
    request: Request,
    user_id: int,
    body: RoleNameRequest,
    current_user: User = Depends(require_users_manage),
) -> UserAccessEnvelope:
    return _access_envelope("Role assigned successfully.", _admin(request).assign_role(user_id, body.role))


@router.post("/admin/users/{user_id}/remove-role", response_model=UserAccessEnvelope)
def remove_role(
    request: Request,
    user_id: int,
    body: RoleNameRequest,
    current_user: User = Depends(require_users_manage),
) -> UserAccessEnvelope:
    return _access_envelope("Role removed successfully.", _admin(request).remove_role(user_id, body.role))


@router.post("/admin/users/{user_id}/sync-roles", response_model=UserAccessEnvelope)
def sync_roles(
    request: Request,
    user_id: int,
    body: RoleNamesRequest,
    current_user: User = Depends(require_users_manage),
) -> UserAccessEnvelope:
    return _access_envelope("Roles synced successfully.", _admin(request).sync_roles(user_id, body.roles))


@router.post("/admin/users/{user_id}/give-permission", response_model=UserAccessEnvelope)
def give_permission(
    request: Request,
    user_id: int,
    body: PermissionNameRequest,
    current_user: User = Depends(require_users_manage),
) -> UserAccessEnvelope:
    access = _admin(request).give_permission(user_id, body.permission)
    return _access_envelope("Permission granted successfully.", access)


@router.post("/admin/users/{user_id}/revoke-permission", response_model=UserAccessEnvelope)
def revoke_permission(
    request: Request,
    user_id: int,
    body: PermissionNameRequest,
    current_user: User = Depends(require_users_manage),
) -> UserAccessEnvelope:
    access = _admin(request).revoke_permission(user_id, body.permission)
    return _access_envelope("Permission revoked successfully.", access)


@router.post("/admin/users/{user_id}/sync-permissions", response_model=UserAccessEnvelope)
def sync_permissions(
    request: Request,
    user_id: int,
    body: PermissionNamesRequest,
    current_user: User = Depends(require_users_manage),
) -> UserAccessEnvelope:
    access = _admin(request).sync_permissions(user_id, body.permissions)
    return _access_envelope("Permissions synced successfully.", access)
