"""
rbac/admin.py -- Admin Mutation API over the role/permission graph.

AdminService is the only writer of roles, permissions, and edges outside of
seeding. Each operation is one store call running in one transaction, and
each returns a projection re-read from the store after the commit -- never
an object built before the write.

Failure translation:
  sqlalchemy IntegrityError on a name     -> Conflict (409)
  rbac.store.UnknownNamesError            -> ValidationError (422) with one
                                             field path per unknown name,
                                             e.g. "roles.1"
  missing role / permission / user id     -> NotFound (404)
  deleting a protected name               -> ProtectedEntity (422)

Idempotency: assign/remove/give/revoke succeed as no-ops when the edge is
already in the requested state. sync_* replaces the full set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from core.errors import Conflict, NotFound, ValidationError
from core.listing import Page, PageRequest
from rbac.access import ProtectedNames
from rbac.graph import PermissionGraph
from rbac.models import Permission, Role, UserAccess
from rbac.store import RBACStore, UnknownNamesError

logger = logging.getLogger("rolegate.rbac")

_NAME_TAKEN = "The name has already been taken."


@contextmanager
def _known_names(field: str, names: Sequence[str], indexed: bool) -> Iterator[None]:
    """Turn UnknownNamesError into a ValidationError keyed by request field path."""
    try:
        yield
    except UnknownNamesError as exc:
        fields: dict[str, list[str]] = {}
        for index, name in enumerate(names):
            if name in exc.missing:
                path = f"{field}.{index}" if indexed else field
                fields.setdefault(path, []).append(f"The selected {path} is invalid.")
        raise ValidationError(f"The selected {field} is invalid.", fields=fields) from exc


class AdminService:
    """Admin operations on roles, permissions, and user assignments.

    Usage:
        admin = AdminService(user_store, rbac_store, ProtectedNames())
        admin.assign_role(user_id, "usuario")
        admin.user_access(user_id).permissions  # ['profile.read']
    """

    def __init__(
        self,
        users: UserStore,
        rbac: RBACStore,
        protected: ProtectedNames | None = None,
        graph: PermissionGraph | None = None,
    ) -> None:
        self.users = users
        self.rbac = rbac
        self.protected = protected or ProtectedNames()
        self.graph = graph or PermissionGraph(rbac)

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def user_access(self, user_id: int) -> UserAccess:
        return self._access(self._user(user_id))

    def _access(self, user: User) -> UserAccess:
        return UserAccess(
            id=user.id,
            name=user.name,
            email=user.email,
            roles=sorted(self.graph.role_names(user.id)),
            permissions=self.graph.ordered_permissions(user.id),
        )

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_users(self, request: PageRequest) -> Page[UserAccess]:
        return self.users.page_users(request).map(self._access)

    def list_roles(self, request: PageRequest) -> Page[Role]:
        return self.rbac.page_roles(request)

    def list_permissions(self, request: PageRequest) -> Page[Permission]:
        return self.rbac.page_permissions(request)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, name: str) -> Role:
        if self.rbac.get_role_by_name(name) is not None:
            raise Conflict(_NAME_TAKEN)
        try:
            role_id = self.rbac.create_role(name)
        except IntegrityError as exc:
            raise Conflict(_NAME_TAKEN) from exc
        logger.info("Created role %r (id=%d)", name, role_id)
        return self._role(role_id)

    def rename_role(self, role_id: int, name: str) -> Role:
        role = self._role(role_id)
        self.protected.guard_role_rename(role.name, name)
        holder = self.rbac.get_role_by_name(name)
        if holder is not None and holder.id != role_id:
            raise Conflict(_NAME_TAKEN)
        try:
            self.rbac.rename_role(role_id, name)
        except IntegrityError as exc:
            raise Conflict(_NAME_TAKEN) from exc
        logger.info("Renamed role %r -> %r (id=%d)", role.name, name, role_id)
        return self._role(role_id)

    def delete_role(self, role_id: int) -> Role:
        """Delete a role and its edges. Returns the role as it was before deletion."""
        role = self._role(role_id)
        self.protected.guard_role(role.name)
        self.rbac.delete_role(role_id)
        logger.info("Deleted role %r (id=%d)", role.name, role_id)
        return role

    def sync_role_permissions(self, role_id: int, permission_names: Sequence[str]) -> Role:
        self._role(role_id)
        with _known_names("permissions", permission_names, indexed=True):
            self.rbac.sync_role_permissions(role_id, permission_names)
        logger.info("Synced permissions of role id=%d to %s", role_id, list(permission_names))
        return self._role(role_id)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, name: str) -> Permission:
        if self.rbac.get_permission_by_name(name) is not None:
            raise Conflict(_NAME_TAKEN)
        try:
            permission_id = self.rbac.create_permission(name)
        except IntegrityError as exc:
            raise Conflict(_NAME_TAKEN) from exc
        logger.info("Created permission %r (id=%d)", name, permission_id)
        return self._permission(permission_id)

    def rename_permission(self, permission_id: int, name: str) -> Permission:
        permission = self._permission(permission_id)
        self.protected.guard_permission_rename(permission.name, name)
        holder = self.rbac.get_permission_by_name(name)
        if holder is not None and holder.id != permission_id:
            raise Conflict(_NAME_TAKEN)
        try:
            self.rbac.rename_permission(permission_id, name)
        except IntegrityError as exc:
            raise Conflict(_NAME_TAKEN) from exc
        logger.info("Renamed permission %r -> %r (id=%d)", permission.name, name, permission_id)
        return self._permission(permission_id)

    def delete_permission(self, permission_id: int) -> Permission:
        """Delete a permission and its edges. Returns the permission as it was before deletion."""
        permission = self._permission(permission_id)
        self.protected.guard_permission(permission.name)
        self.rbac.delete_permission(permission_id)
        logger.info("Deleted permission %r (id=%d)", permission.name, permission_id)
        return permission

    # ------------------------------------------------------------------
    # User roles
    # ------------------------------------------------------------------

    def assign_role(self, user_id: int, role_name: str) -> UserAccess:
        self._user(user_id)
        with _known_names("role", [role_name], indexed=False):
            self.rbac.add_user_roles(user_id, [role_name])
        logger.info("Assigned role %r to user id=%d", role_name, user_id)
        return self.user_access(user_id)

    def remove_role(self, user_id: int, role_name: str) -> UserAccess:
        self._user(user_id)
        with _known_names("role", [role_name], indexed=False):
            self.rbac.remove_user_roles(user_id, [role_name])
        logger.info("Removed role %r from user id=%d", role_name, user_id)
        return self.user_access(user_id)

    def sync_roles(self, user_id: int, role_names: Sequence[str]) -> UserAccess:
        self._user(user_id)
        with _known_names("roles", role_names, indexed=True):
            self.rbac.sync_user_roles(user_id, role_names)
        logger.info("Synced roles of user id=%d to %s", user_id, list(role_names))
        return self.user_access(user_id)

    # ------------------------------------------------------------------
    # User direct permissions
    # ------------------------------------------------------------------

    def give_permission(self, user_id: int, permission_name: str) -> UserAccess:
        self._user(user_id)
        with _known_names("permission", [permission_name], indexed=False):
            self.rbac.add_user_permissions(user_id, [permission_name])
        logger.info("Gave permission %r to user id=%d", permission_name, user_id)
        return self.user_access(user_id)

    def revoke_permission(self, user_id: int, permission_name: str) -> UserAccess:
        self._user(user_id)
        with _known_names("permission", [permission_name], indexed=False):
            self.rbac.remove_user_permissions(user_id, [permission_name])
        logger.info("Revoked permission %r from user id=%d", permission_name, user_id)
        return self.user_access(user_id)

    def sync_permissions(self, user_id: int, permission_names: Sequence[str]) -> UserAccess:
        self._user(user_id)
        with _known_names("permissions", permission_names, indexed=True):
            self.rbac.sync_user_permissions(user_id, permission_names)
        logger.info("Synced direct permissions of user id=%d to %s", user_id, list(permission_names))
        return self.user_access(user_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _user(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found.")
        return user

    def _role(self, role_id: int) -> Role:
        role = self.rbac.get_role(role_id)
        if role is None:
            raise NotFound("Role not found.")
        return role

    def _permission(self, permission_id: int) -> Permission:
        permission = self.rbac.get_permission(permission_id)
        if permission is None:
            raise NotFound("Permission not found.")
        return permission
