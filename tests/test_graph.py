"""
tests/test_graph.py -- Unit tests for rbac/store.py and rbac/graph.py.

Covers:
  - Seeding: admin holds all three permissions, usuario holds profile.read,
    and running the seed twice changes nothing
  - Effective permissions = direct grants ∪ permissions of held roles
  - Payload ordering: direct grants first, then inherited, no duplicates
  - Edge writes: add is idempotent, sync replaces, unknown names write nothing
  - Deleting a role or permission removes every edge that references it
"""

from __future__ import annotations

import pytest

from core.listing import PageRequest
from rbac.graph import PermissionGraph
from rbac.seed import seed_defaults
from rbac.store import UnknownNamesError

USER_ID = 42


class TestSeed:
    def test_default_roles_and_permissions(self, seeded):
        _, rbac = seeded
        assert rbac.get_role_by_name("admin").permissions == ["profile.read", "users.manage", "users.read"]
        assert rbac.get_role_by_name("usuario").permissions == ["profile.read"]

    def test_seed_is_idempotent(self, seeded):
        _, rbac = seeded
        seed_defaults(rbac)
        page = rbac.page_roles(PageRequest())
        assert [r.name for r in page.items] == ["admin", "usuario"]
        assert rbac.page_permissions(PageRequest()).total == 3

    def test_seed_keeps_operator_additions(self, seeded):
        _, rbac = seeded
        rbac.create_permission("reports.view")
        usuario = rbac.get_role_by_name("usuario")
        rbac.add_role_permissions(usuario.id, ["reports.view"])
        seed_defaults(rbac)
        assert rbac.get_role(usuario.id).permissions == ["profile.read", "reports.view"]


class TestPermissionGraph:
    """Effective permission resolution."""

    def test_user_without_anything(self, seeded):
        _, rbac = seeded
        graph = PermissionGraph(rbac)
        assert graph.role_names(USER_ID) == set()
        assert graph.effective_permissions(USER_ID) == set()
        assert graph.has_permission(USER_ID, "profile.read") is False

    def test_inherited_through_role(self, seeded):
        _, rbac = seeded
        rbac.add_user_roles(USER_ID, ["usuario"])
        graph = PermissionGraph(rbac)
        assert graph.has_role(USER_ID, "usuario")
        assert not graph.has_role(USER_ID, "admin")
        assert graph.inherited_permissions(USER_ID) == {"profile.read"}
        assert graph.direct_permissions(USER_ID) == set()
        assert graph.has_permission(USER_ID, "profile.read")

    def test_effective_is_union_of_direct_and_inherited(self, seeded):
        _, rbac = seeded
        rbac.add_user_roles(USER_ID, ["usuario"])
        rbac.add_user_permissions(USER_ID, ["users.read", "profile.read"])
        graph = PermissionGraph(rbac)
        assert graph.effective_permissions(USER_ID) == {"profile.read", "users.read"}
        assert graph.has_permission(USER_ID, "users.read")
        assert not graph.has_permission(USER_ID, "users.manage")

    def test_ordered_permissions_direct_first_without_duplicates(self, seeded):
        _, rbac = seeded
        rbac.add_user_roles(USER_ID, ["admin"])
        rbac.add_user_permissions(USER_ID, ["users.read"])
        graph = PermissionGraph(rbac)
        assert graph.ordered_permissions(USER_ID) == ["users.read", "profile.read", "users.manage"]

    def test_names_are_case_sensitive(self, seeded):
        _, rbac = seeded
        rbac.add_user_roles(USER_ID, ["admin"])
        graph = PermissionGraph(rbac)
        assert not graph.has_role(USER_ID, "Admin")
        assert not graph.has_permission(USER_ID, "USERS.READ")

    def test_reads_see_changes_immediately(self, seeded):
        _, rbac = seeded
        graph = PermissionGraph(rbac)
        rbac.add_user_roles(USER_ID, ["admin"])
        assert graph.has_permission(USER_ID, "users.manage")
        rbac.remove_user_roles(USER_ID, ["admin"])
        assert not graph.has_permission(USER_ID, "users.manage")


class TestEdges:
    """Edge mutations on the store."""

    def test_add_is_idempotent(self, seeded):
        _, rbac = seeded
        rbac.add_user_roles(USER_ID, ["usuario"])
        rbac.add_user_roles(USER_ID, ["usuario"])
        assert rbac.role_names_for_user(USER_ID) == ["usuario"]

    def test_remove_missing_edge_is_a_no_op(self, seeded):
        _, rbac = seeded
        rbac.remove_user_permissions(USER_ID, ["users.read"])
        assert rbac.direct_permission_names(USER_ID) == []

    def test_sync_replaces_the_whole_set(self, seeded):
        _, rbac = seeded
        rbac.add_user_roles(USER_ID, ["admin"])
        rbac.sync_user_roles(USER_ID, ["usuario"])
        assert rbac.role_names_for_user(USER_ID) == ["usuario"]
        rbac.sync_user_roles(USER_ID, [])
        assert rbac.role_names_for_user(USER_ID) == []

    def test_sync_with_unknown_name_changes_nothing(self, seeded):
        _, rbac = seeded
        rbac.add_user_permissions(USER_ID, ["users.read"])
        with pytest.raises(UnknownNamesError) as excinfo:
            rbac.sync_user_permissions(USER_ID, ["profile.read", "nope", "also.nope"])
        assert excinfo.value.missing == ["nope", "also.nope"]
        assert excinfo.value.kind == "permissions"
        assert rbac.direct_permission_names(USER_ID) == ["users.read"]

    def test_sync_role_permissions(self, seeded):
        _, rbac = seeded
        usuario = rbac.get_role_by_name("usuario")
        rbac.sync_role_permissions(usuario.id, ["users.read", "profile.read"])
        assert rbac.get_role(usuario.id).permissions == ["profile.read", "users.read"]


class TestCascadingDeletes:
    def test_delete_role_removes_its_edges(self, seeded):
        _, rbac = seeded
        role_id = rbac.create_role("auditor")
        rbac.sync_role_permissions(role_id, ["users.read"])
        rbac.add_user_roles(USER_ID, ["auditor"])
        assert rbac.delete_role(role_id) is True
        assert rbac.get_role(role_id) is None
        assert rbac.role_names_for_user(USER_ID) == []
        assert rbac.inherited_permission_names(USER_ID) == []
        assert rbac.delete_role(role_id) is False

    def test_delete_permission_removes_its_edges(self, seeded):
        _, rbac = seeded
        permission_id = rbac.create_permission("reports.view")
        admin = rbac.get_role_by_name("admin")
        rbac.add_role_permissions(admin.id, ["reports.view"])
        rbac.add_user_permissions(USER_ID, ["reports.view"])
        assert rbac.delete_permission(permission_id) is True
        assert "reports.view" not in rbac.get_role(admin.id).permissions
        assert rbac.direct_permission_names(USER_ID) == []
