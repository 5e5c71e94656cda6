"""
rbac/models.py -- Domain dataclasses for the role/permission graph.

Pattern: Data class (pure data container, zero logic). Stores build these
from rows; AdminService returns them; api/ maps them onto response models.

guard_name tags every role and permission with the authentication context
it applies to. RoleGate has exactly one context, "web".

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

GUARD_NAME = "web"


@dataclass
class Permission:
    """A named capability, granted to users directly or through roles."""

    name: str
    id: int | None = None
    guard_name: str = GUARD_NAME
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Role:
    """A named bundle of permissions.

    permissions holds permission names, ordered by name. It is filled by the
    store whenever a Role is returned, so a Role always reflects committed
    state at the time it was read.
    """

    name: str
    id: int | None = None
    guard_name: str = GUARD_NAME
    permissions: list[str] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class UserAccess:
    """Authorization view of one user.

    roles: direct role memberships.
    permissions: effective permissions -- direct grants first, then those
    inherited through roles, without duplicates.
    """

    id: int
    name: str
    email: str
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
