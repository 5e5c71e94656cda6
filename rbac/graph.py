"""
rbac/graph.py -- Read side of the role/permission graph.

PermissionGraph answers membership questions about one user:

    effective permissions = direct grants  ∪  permissions of every held role

All reads are side-effect free and go to the store every time -- there is no
cache to invalidate, so a check made right after a mutation sees it.
Names are matched exactly (case-sensitive). An unknown user simply has no
roles and no permissions.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from rbac.store import RBACStore


class PermissionGraph:
    def __init__(self, store: RBACStore) -> None:
        self.store = store

    def role_names(self, user_id: int) -> set[str]:
        """Direct role memberships only."""
        return set(self.store.role_names_for_user(user_id))

    def direct_permissions(self, user_id: int) -> set[str]:
        return set(self.store.direct_permission_names(user_id))

    def inherited_permissions(self, user_id: int) -> set[str]:
        return set(self.store.inherited_permission_names(user_id))

    def effective_permissions(self, user_id: int) -> set[str]:
        return self.direct_permissions(user_id) | self.inherited_permissions(user_id)

    def ordered_permissions(self, user_id: int) -> list[str]:
        """Effective permissions for payloads: direct grants first, then inherited, no duplicates."""
        ordered = self.store.direct_permission_names(user_id)
        seen = set(ordered)
        for name in self.store.inherited_permission_names(user_id):
            if name not in seen:
                seen.add(name)
                ordered.append(name)
        return ordered

    def has_role(self, user_id: int, name: str) -> bool:
        return name in self.role_names(user_id)

    def has_permission(self, user_id: int, name: str) -> bool:
        return name in self.effective_permissions(user_id)
