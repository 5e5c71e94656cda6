"""
rbac/store.py -- SQLAlchemy Core persistence layer for roles, permissions, and their edges.

Pattern: Repository + Data Mapper (same as auth/store.py).
RBACStore is the repository; _row_to_role / _row_to_permission are the
mappers. AdminService and PermissionGraph never touch SQL directly.

Graph layout (composite primary keys make every edge unique per pair):

    roles ──< role_has_permissions >── permissions
      ^                                   ^
      └──< user_has_roles       user_has_permissions >──┘
                 (user_id)          (user_id)

user_id columns reference users.id in auth/store.py. The two stores share one
database but not one MetaData, so the reference is by convention.

Transactions:
  Every mutation that touches more than one row runs inside engine.begin().
  Name resolution happens inside the same transaction as the write, so a
  sync either applies in full or -- on an unknown name -- not at all.

Unknown names:
  Edge mutations take names, not ids. If any name does not exist the store
  raises UnknownNamesError listing every missing name, before any write.

Layer rule: no imports from api/. Imports from core/ and auth/ are allowed.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.store import build_engine
from core.config import get_settings
from core.listing import ListingSpec, Page, PageRequest, run_listing
from rbac.models import GUARD_NAME, Permission, Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("guard_name", String(50), nullable=False, server_default=GUARD_NAME),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("guard_name", String(50), nullable=False, server_default=GUARD_NAME),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_role_has_permissions = Table(
    "role_has_permissions",
    _metadata,
    Column("permission_id", Integer, ForeignKey("permissions.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)

_user_has_roles = Table(
    "user_has_roles",
    _metadata,
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
    Column("user_id", Integer, primary_key=True, index=True),
)

_user_has_permissions = Table(
    "user_has_permissions",
    _metadata,
    Column("permission_id", Integer, ForeignKey("permissions.id"), primary_key=True),
    Column("user_id", Integer, primary_key=True, index=True),
)

ROLE_LISTING = ListingSpec(
    search_columns=(_roles.c.name,),
    sort_columns={"id": _roles.c.id, "name": _roles.c.name},
    default_sort="name",
)

PERMISSION_LISTING = ListingSpec(
    search_columns=(_permissions.c.name,),
    sort_columns={"id": _permissions.c.id, "name": _permissions.c.name},
    default_sort="name",
)


@dataclass(frozen=True)
class _Edge:
    """One many-to-many relation: owner id -> set of target ids, targets addressed by name."""

    table: Table
    owner: str
    target: str
    targets: Table


_ROLE_PERMISSIONS = _Edge(_role_has_permissions, "role_id", "permission_id", _permissions)
_USER_ROLES = _Edge(_user_has_roles, "user_id", "role_id", _roles)
_USER_PERMISSIONS = _Edge(_user_has_permissions, "user_id", "permission_id", _permissions)


class UnknownNamesError(LookupError):
    """Raised when an edge mutation names roles or permissions that do not exist."""

    def __init__(self, kind: str, missing: Sequence[str]) -> None:
        self.kind = kind
        self.missing = list(missing)
        super().__init__(f"Unknown {kind}: {', '.join(self.missing)}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _resolve_ids(conn: Connection, table: Table, names: Iterable[str]) -> dict[str, int]:
    """Map every name to its id. Raises UnknownNamesError if any is missing."""
    wanted = list(dict.fromkeys(names))
    if not wanted:
        return {}
    rows = conn.execute(select(table.c.name, table.c.id).where(table.c.name.in_(wanted))).fetchall()
    found = {row.name: row.id for row in rows}
    missing = [name for name in wanted if name not in found]
    if missing:
        raise UnknownNamesError(table.name, missing)
    return found


def _target_ids(conn: Connection, edge: _Edge, owner_id: int) -> set[int]:
    owner_col = edge.table.c[edge.owner]
    target_col = edge.table.c[edge.target]
    return set(conn.execute(select(target_col).where(owner_col == owner_id)).scalars())


def _names_via(conn: Connection, edge: _Edge, owner_id: int) -> list[str]:
    """Return target names linked to owner_id through edge, ordered by name."""
    targets = edge.targets
    stmt = (
        select(targets.c.name)
        .join(edge.table, edge.table.c[edge.target] == targets.c.id)
        .where(edge.table.c[edge.owner] == owner_id)
        .order_by(targets.c.name)
    )
    return list(conn.execute(stmt).scalars())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RBACStore:
    """Repository for Role and Permission entities and the three edge relations.

    Usage:
        store = RBACStore("sqlite:///rolegate.db")
        role_id = store.create_role("auditor")
        store.sync_role_permissions(role_id, ["users.read"])
        store.add_user_roles(user_id, ["auditor"])
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = build_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, name: str) -> int:
        """Insert a role and return its ID. Raises IntegrityError if the name is taken."""
        return self._create(_roles, name)

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
            return _row_to_role(row, _names_via(conn, _ROLE_PERMISSIONS, row.id)) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
            return _row_to_role(row, _names_via(conn, _ROLE_PERMISSIONS, row.id)) if row is not None else None

    def rename_role(self, role_id: int, name: str) -> bool:
        """Rename a role. Raises IntegrityError if another role holds name."""
        return self._rename(_roles, role_id, name)

    def delete_role(self, role_id: int) -> bool:
        """Delete a role and every edge that references it. Returns False if not found."""
        with self.engine.begin() as conn:
            conn.execute(_role_has_permissions.delete().where(_role_has_permissions.c.role_id == role_id))
            conn.execute(_user_has_roles.delete().where(_user_has_roles.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
        return result.rowcount > 0

    def find_or_create_role(self, name: str) -> Role:
        existing = self.get_role_by_name(name)
        if existing is not None:
            return existing
        try:
            role_id = self.create_role(name)
        except IntegrityError:
            # Created concurrently between the lookup and the insert.
            return self.get_role_by_name(name)
        return self.get_role(role_id)

    def page_roles(self, request: PageRequest) -> Page[Role]:
        """Return one page of roles, each with its permission names loaded."""
        with self.engine.connect() as conn:
            page = run_listing(conn, _roles.select(), ROLE_LISTING, request, lambda row: row)
            return page.map(lambda row: _row_to_role(row, _names_via(conn, _ROLE_PERMISSIONS, row.id)))

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def create_permission(self, name: str) -> int:
        """Insert a permission and return its ID. Raises IntegrityError if the name is taken."""
        return self._create(_permissions, name)

    def get_permission(self, permission_id: int) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.id == permission_id)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def get_permission_by_name(self, name: str) -> Permission | None:
        with self.engine.connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.name == name)).fetchone()
        return _row_to_permission(row) if row is not None else None

    def rename_permission(self, permission_id: int, name: str) -> bool:
        """Rename a permission. Raises IntegrityError if another permission holds name."""
        return self._rename(_permissions, permission_id, name)

    def delete_permission(self, permission_id: int) -> bool:
        """Delete a permission and every edge that references it. Returns False if not found."""
        with self.engine.begin() as conn:
            conn.execute(
                _role_has_permissions.delete().where(_role_has_permissions.c.permission_id == permission_id)
            )
            conn.execute(
                _user_has_permissions.delete().where(_user_has_permissions.c.permission_id == permission_id)
            )
            result = conn.execute(_permissions.delete().where(_permissions.c.id == permission_id))
        return result.rowcount > 0

    def find_or_create_permission(self, name: str) -> Permission:
        existing = self.get_permission_by_name(name)
        if existing is not None:
            return existing
        try:
            permission_id = self.create_permission(name)
        except IntegrityError:
            return self.get_permission_by_name(name)
        return self.get_permission(permission_id)

    def page_permissions(self, request: PageRequest) -> Page[Permission]:
        with self.engine.connect() as conn:
            return run_listing(conn, _permissions.select(), PERMISSION_LISTING, request, _row_to_permission)

    # ------------------------------------------------------------------
    # Role -> permission edges
    # ------------------------------------------------------------------

    def sync_role_permissions(self, role_id: int, names: Sequence[str]) -> None:
        """Replace the role's permission set with exactly names."""
        self._replace_edges(_ROLE_PERMISSIONS, role_id, names)

    def add_role_permissions(self, role_id: int, names: Sequence[str]) -> None:
        """Add permissions to a role, keeping the ones it already has."""
        self._add_edges(_ROLE_PERMISSIONS, role_id, names)

    # ------------------------------------------------------------------
    # User -> role edges
    # ------------------------------------------------------------------

    def add_user_roles(self, user_id: int, names: Sequence[str]) -> None:
        self._add_edges(_USER_ROLES, user_id, names)

    def remove_user_roles(self, user_id: int, names: Sequence[str]) -> None:
        self._remove_edges(_USER_ROLES, user_id, names)

    def sync_user_roles(self, user_id: int, names: Sequence[str]) -> None:
        self._replace_edges(_USER_ROLES, user_id, names)

    # ------------------------------------------------------------------
    # User -> permission edges (direct grants)
    # ------------------------------------------------------------------

    def add_user_permissions(self, user_id: int, names: Sequence[str]) -> None:
        self._add_edges(_USER_PERMISSIONS, user_id, names)

    def remove_user_permissions(self, user_id: int, names: Sequence[str]) -> None:
        self._remove_edges(_USER_PERMISSIONS, user_id, names)

    def sync_user_permissions(self, user_id: int, names: Sequence[str]) -> None:
        self._replace_edges(_USER_PERMISSIONS, user_id, names)

    # ------------------------------------------------------------------
    # Graph reads
    # ------------------------------------------------------------------

    def role_names_for_user(self, user_id: int) -> list[str]:
        with self.engine.connect() as conn:
            return _names_via(conn, _USER_ROLES, user_id)

    def direct_permission_names(self, user_id: int) -> list[str]:
        with self.engine.connect() as conn:
            return _names_via(conn, _USER_PERMISSIONS, user_id)

    def inherited_permission_names(self, user_id: int) -> list[str]:
        """Return names of permissions the user holds through any role, ordered by name."""
        stmt = (
            select(_permissions.c.name)
            .distinct()
            .join(_role_has_permissions, _role_has_permissions.c.permission_id == _permissions.c.id)
            .join(_user_has_roles, _user_has_roles.c.role_id == _role_has_permissions.c.role_id)
            .where(_user_has_roles.c.user_id == user_id)
            .order_by(_permissions.c.name)
        )
        with self.engine.connect() as conn:
            return list(conn.execute(stmt).scalars())

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Generic entity and edge writes
    # ------------------------------------------------------------------

    def _create(self, table: Table, name: str) -> int:
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(table.insert().values(name=name, guard_name=GUARD_NAME, created_at=now, updated_at=now))
            conn.commit()
            return result.inserted_primary_key[0]

    def _rename(self, table: Table, entity_id: int, name: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(table.update().where(table.c.id == entity_id).values(name=name, updated_at=_now_iso()))
            conn.commit()
        return result.rowcount > 0

    def _add_edges(self, edge: _Edge, owner_id: int, names: Sequence[str]) -> None:
        with self.engine.begin() as conn:
            ids = _resolve_ids(conn, edge.targets, names)
            existing = _target_ids(conn, edge, owner_id)
            new_ids = [target_id for target_id in ids.values() if target_id not in existing]
            if new_ids:
                conn.execute(edge.table.insert(), [{edge.owner: owner_id, edge.target: t} for t in new_ids])

    def _remove_edges(self, edge: _Edge, owner_id: int, names: Sequence[str]) -> None:
        with self.engine.begin() as conn:
            ids = _resolve_ids(conn, edge.targets, names)
            if ids:
                conn.execute(
                    edge.table.delete().where(
                        (edge.table.c[edge.owner] == owner_id) & edge.table.c[edge.target].in_(list(ids.values()))
                    )
                )

    def _replace_edges(self, edge: _Edge, owner_id: int, names: Sequence[str]) -> None:
        with self.engine.begin() as conn:
            ids = _resolve_ids(conn, edge.targets, names)
            conn.execute(edge.table.delete().where(edge.table.c[edge.owner] == owner_id))
            if ids:
                conn.execute(edge.table.insert(), [{edge.owner: owner_id, edge.target: t} for t in ids.values()])


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_role(row, permissions: list[str]) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        guard_name=row.guard_name,
        permissions=permissions,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        guard_name=row.guard_name,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
