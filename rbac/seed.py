"""
rbac/seed.py -- Default roles and permissions.

    permissions: profile.read, users.read, users.manage
    admin:       all three
    usuario:     profile.read

seed_defaults() is find-or-create plus add-missing-edges: running it twice
changes nothing, and it never removes a permission an operator added to
admin or usuario. Called from the app lifespan when SEED_ON_STARTUP is set
and from `python main.py seed`.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from rbac.store import RBACStore

logger = logging.getLogger("rolegate.rbac")

DEFAULT_PERMISSIONS: tuple[str, ...] = ("profile.read", "users.read", "users.manage")

DEFAULT_ROLES: dict[str, tuple[str, ...]] = {
    "admin": DEFAULT_PERMISSIONS,
    "usuario": ("profile.read",),
}


def seed_defaults(store: RBACStore) -> None:
    for name in DEFAULT_PERMISSIONS:
        store.find_or_create_permission(name)
    for role_name, permission_names in DEFAULT_ROLES.items():
        role = store.find_or_create_role(role_name)
        store.add_role_permissions(role.id, permission_names)
    logger.info(
        "Default roles and permissions ensured (%d roles, %d permissions)",
        len(DEFAULT_ROLES),
        len(DEFAULT_PERMISSIONS),
    )
