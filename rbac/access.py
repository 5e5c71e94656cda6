"""
rbac/access.py -- Access Control Enforcer: route requirements and the protected-name guard.

Requirements:
  Every protected operation declares exactly one Requirement -- either a
  RoleRequirement or a PermissionRequirement. There is no AND/OR
  combinator. enforce() is the single evaluation point; it raises Forbidden
  (403) when the user lacks the requirement. Token resolution happens before
  enforce() runs (see rbac/dependencies.py), so 401 always wins over 403.

  RoleRequirement checks direct role membership.
  PermissionRequirement checks effective permissions (direct or via a role).

Protected names:
  ProtectedNames holds the two sets of names that may never be deleted or
  renamed away. It is
  a value injected into AdminService, defaulting to
      roles:       admin, usuario
      permissions: profile.read, users.read, users.manage
  and overridable through PROTECTED_ROLES / PROTECTED_PERMISSIONS.
  Edges involving protected names remain mutable.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from core.config import Settings
from core.errors import Forbidden, ProtectedEntity
from rbac.graph import PermissionGraph

logger = logging.getLogger("rolegate.rbac")

DEFAULT_PROTECTED_ROLES = frozenset({"admin", "usuario"})
DEFAULT_PROTECTED_PERMISSIONS = frozenset({"profile.read", "users.read", "users.manage"})


# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleRequirement:
    name: str

    def __str__(self) -> str:
        return f"role:{self.name}"


@dataclass(frozen=True)
class PermissionRequirement:
    name: str

    def __str__(self) -> str:
        return f"permission:{self.name}"


Requirement = Union[RoleRequirement, PermissionRequirement]


def is_satisfied(graph: PermissionGraph, user_id: int, requirement: Requirement) -> bool:
    if isinstance(requirement, RoleRequirement):
        return graph.has_role(user_id, requirement.name)
    if isinstance(requirement, PermissionRequirement):
        return graph.has_permission(user_id, requirement.name)
    raise TypeError(f"Unsupported requirement: {requirement!r}")


def enforce(graph: PermissionGraph, user_id: int, requirement: Requirement) -> None:
    """Raise Forbidden unless the user satisfies requirement."""
    if is_satisfied(graph, user_id, requirement):
        return
    logger.warning("Forbidden: user id=%d lacks %s", user_id, requirement)
    if isinstance(requirement, RoleRequirement):
        raise Forbidden("User does not have the right roles.")
    raise Forbidden("User does not have the right permissions.")


# ---------------------------------------------------------------------------
# Protected names
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProtectedNames:
    roles: frozenset[str] = DEFAULT_PROTECTED_ROLES
    permissions: frozenset[str] = DEFAULT_PROTECTED_PERMISSIONS

    @classmethod
    def from_settings(cls, settings: Settings) -> ProtectedNames:
        return cls(roles=frozenset(settings.protected_roles), permissions=frozenset(settings.protected_permissions))

    def guard_role(self, name: str) -> None:
        """Raise ProtectedEntity if the role may not be deleted."""
        if name in self.roles:
            logger.warning("Refused to delete protected role %r", name)
            raise ProtectedEntity("System roles cannot be deleted.")

    def guard_role_rename(self, current: str, new: str) -> None:
        """Raise ProtectedEntity if a protected role would lose its name."""
        if current in self.roles and new != current:
            logger.warning("Refused to rename protected role %r", current)
            raise ProtectedEntity("System roles cannot be renamed.")

    def guard_permission(self, name: str) -> None:
        """Raise ProtectedEntity if the permission may not be deleted."""
        if name in self.permissions:
            logger.warning("Refused to delete protected permission %r", name)
            raise ProtectedEntity("System permissions cannot be deleted.")

    def guard_permission_rename(self, current: str, new: str) -> None:
        """Raise ProtectedEntity if a protected permission would lose its name."""
        if current in self.permissions and new != current:
            logger.warning("Refused to rename protected permission %r", current)
            raise ProtectedEntity("System permissions cannot be renamed.")
