"""
core/listing.py -- Generic search + sort + paginate query over SQLAlchemy Core selects.

Every admin list endpoint (users, roles, permissions) runs through
run_listing(). The caller supplies the base SELECT, a ListingSpec naming which
columns may be searched and sorted, the already-validated PageRequest, and a
row mapper. The result is a Page that renders into the standard payload:

    {
      "items": [...],
      "pagination": {current_page, per_page, total, last_page, from, to, has_more_pages},
      "links": {first, last, prev, next}
    }

Search semantics: case-insensitive "contains" (ILIKE) OR-combined across every
configured search column. LIKE wildcards inside the search term are escaped,
so "50%" matches the literal text "50%".

Sort semantics: a sort_by outside the allowlist (or no sort_by at all) falls
back to the ListingSpec default column AND default direction. A sort_dir other
than "asc"/"desc" falls back to the default direction.

Input-shape checks (page >= 1, 1 <= per_page <= 100, sort_dir in {asc, desc})
belong to the HTTP boundary. PageRequest carries values that already passed.

Layer rule: core/ is the kernel. This module may not import from api/, auth/
or rbac/.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, func, or_, select
from sqlalchemy.engine import Connection

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100
SORT_DIRECTIONS = ("asc", "desc")

# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageRequest:
    """Validated listing parameters. Empty strings are treated as absent."""

    page: int = 1
    per_page: int = DEFAULT_PER_PAGE
    search: str | None = None
    sort_by: str | None = None
    sort_dir: str | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


@dataclass(frozen=True)
class ListingSpec:
    """Which columns of a listing may be searched and sorted.

    sort_columns maps the public sort key (what clients send as sort_by) to
    the column expression it orders by.
    """

    search_columns: tuple[ColumnElement[Any], ...]
    sort_columns: Mapping[str, ColumnElement[Any]]
    default_sort: str
    default_dir: str = "asc"

    def __post_init__(self) -> None:
        if self.default_sort not in self.sort_columns:
            raise ValueError(f"default_sort {self.default_sort!r} is not a sortable column")
        if self.default_dir not in SORT_DIRECTIONS:
            raise ValueError(f"default_dir must be one of {SORT_DIRECTIONS}, got {self.default_dir!r}")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class Page(Generic[T]):
    """One page of mapped rows plus the numbers needed to describe it."""

    items: list[T]
    total: int
    page: int
    per_page: int
    sort_by: str = ""
    sort_dir: str = "asc"

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def first_item(self) -> int | None:
        return self.page_offset + 1 if self.items else None

    @property
    def last_item(self) -> int | None:
        return self.page_offset + len(self.items) if self.items else None

    @property
    def page_offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def has_more_pages(self) -> bool:
        return self.page < self.last_page

    def map(self, fn: Callable[[T], U]) -> Page[U]:
        """Return a copy of this page with every item passed through fn."""
        return Page(
            items=[fn(item) for item in self.items],
            total=self.total,
            page=self.page,
            per_page=self.per_page,
            sort_by=self.sort_by,
            sort_dir=self.sort_dir,
        )

    def to_payload(self, link_for: Callable[[int], str]) -> dict[str, Any]:
        """Render the standard listing payload.

        link_for(n) returns the URL of page n with the caller's other query
        parameters preserved. prev/next are None when there is no such page.
        """
        return {
            "items": self.items,
            "pagination": {
                "current_page": self.page,
                "per_page": self.per_page,
                "total": self.total,
                "last_page": self.last_page,
                "from": self.first_item,
                "to": self.last_item,
                "has_more_pages": self.has_more_pages,
            },
            "links": {
                "first": link_for(1),
                "last": link_for(self.last_page),
                "prev": link_for(self.page - 1) if self.page > 1 else None,
                "next": link_for(self.page + 1) if self.has_more_pages else None,
            },
        }


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally (escape char: backslash)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolve_sort(spec: ListingSpec, sort_by: str | None, sort_dir: str | None) -> tuple[str, str]:
    """Return the (column key, direction) a listing will actually order by."""
    if not sort_by or sort_by not in spec.sort_columns:
        return spec.default_sort, spec.default_dir
    direction = (sort_dir or "").lower()
    if direction not in SORT_DIRECTIONS:
        direction = spec.default_dir
    return sort_by, direction


def apply_search(stmt: Select, spec: ListingSpec, search: str | None) -> Select:
    if not search or not spec.search_columns:
        return stmt
    pattern = f"%{escape_like(search)}%"
    return stmt.where(or_(*(column.ilike(pattern, escape="\\") for column in spec.search_columns)))


def run_listing(
    conn: Connection,
    stmt: Select,
    spec: ListingSpec,
    request: PageRequest,
    mapper: Callable[[Any], T],
) -> Page[T]:
    """Filter, count, order, and slice stmt; map each returned row.

    The total is counted over the filtered statement before ordering and
    slicing, so it reflects every matching row rather than the page size.
    """
    filtered = apply_search(stmt, spec, request.search)
    total = conn.execute(select(func.count()).select_from(filtered.subquery())).scalar_one()

    sort_key, direction = resolve_sort(spec, request.sort_by, request.sort_dir)
    column = spec.sort_columns[sort_key]
    ordered = filtered.order_by(column.desc() if direction == "desc" else column.asc())

    rows = conn.execute(ordered.limit(request.per_page).offset(request.offset)).fetchall()
    return Page(
        items=[mapper(row) for row in rows],
        total=total,
        page=request.page,
        per_page=request.per_page,
        sort_by=sort_key,
        sort_dir=direction,
    )
