"""
tests/test_listing.py -- Unit tests for core/listing.py (search + sort + paginate).

Covers:
  - Search is OR-combined across columns, case-insensitive, wildcard-safe
  - Total counts every filtered row, not just the page
  - Unknown sort_by falls back to the default column and direction
  - Unknown sort_dir falls back to the default direction
  - Page numbers, from/to, and links in the rendered payload
  - ListingSpec rejects a default column that is not sortable
"""

from __future__ import annotations

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine

from core.listing import ListingSpec, Page, PageRequest, escape_like, resolve_sort, run_listing

_metadata = MetaData()

_people = Table(
    "people",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(100)),
    Column("email", String(100)),
)

PEOPLE = ListingSpec(
    search_columns=(_people.c.name, _people.c.email),
    sort_columns={"id": _people.c.id, "name": _people.c.name, "email": _people.c.email},
    default_sort="id",
)

ROWS = [
    {"id": 1, "name": "Carlos Pérez", "email": "carlos@example.com"},
    {"id": 2, "name": "Lucia Gómez", "email": "lucia@example.com"},
    {"id": 3, "name": "Ana Ruiz", "email": "ana.carlos@example.com"},
    {"id": 4, "name": "Bruno Díaz", "email": "bruno@example.com"},
    {"id": 5, "name": "Discount 50% Club", "email": "club@example.com"},
    {"id": 6, "name": "Discount 500 Club", "email": "club500@example.com"},
]


@pytest.fixture
def conn():
    engine = create_engine("sqlite://")
    _metadata.create_all(engine)
    with engine.connect() as connection:
        connection.execute(_people.insert(), ROWS)
        connection.commit()
        yield connection
    engine.dispose()


def _listing(conn, **kwargs) -> Page:
    return run_listing(conn, _people.select(), PEOPLE, PageRequest(**kwargs), lambda row: row)


def _ids(page: Page) -> list[int]:
    return [row.id for row in page.items]


class TestSearch:
    """Search filters by substring over every configured column."""

    def test_matches_any_search_column(self, conn):
        page = _listing(conn, search="carlos")
        # id 1 matches on name and email, id 3 on email only; Lucia is excluded.
        assert _ids(page) == [1, 3]
        assert page.total == 2

    def test_is_case_insensitive(self, conn):
        assert _ids(_listing(conn, search="LUCIA")) == [2]

    def test_wildcards_match_literally(self, conn):
        assert _ids(_listing(conn, search="50%")) == [5]

    def test_no_match_gives_empty_page(self, conn):
        page = _listing(conn, search="nobody")
        assert page.items == []
        assert page.total == 0
        assert page.last_page == 1
        assert page.first_item is None
        assert page.last_item is None

    def test_escape_like(self):
        assert escape_like("a_b%c\\") == "a\\_b\\%c\\\\"


class TestSort:
    """Sort keys come from an allowlist with deterministic fallbacks."""

    def test_sort_by_name_desc(self, conn):
        page = _listing(conn, sort_by="name", sort_dir="desc")
        assert _ids(page) == [2, 6, 5, 1, 4, 3]
        assert (page.sort_by, page.sort_dir) == ("name", "desc")

    def test_unknown_sort_by_falls_back_to_default_column_and_direction(self, conn):
        page = _listing(conn, sort_by="password", sort_dir="desc")
        assert _ids(page) == [1, 2, 3, 4, 5, 6]
        assert (page.sort_by, page.sort_dir) == ("id", "asc")

    def test_unknown_sort_dir_falls_back_to_default_direction(self):
        assert resolve_sort(PEOPLE, "email", "sideways") == ("email", "asc")

    def test_sort_dir_is_case_insensitive(self):
        assert resolve_sort(PEOPLE, "name", "DESC") == ("name", "desc")

    def test_missing_sort_by_uses_default(self):
        assert resolve_sort(PEOPLE, None, None) == ("id", "asc")


class TestPagination:
    """Slicing and the rendered pagination payload."""

    def test_second_page(self, conn):
        page = _listing(conn, page=2, per_page=4)
        assert _ids(page) == [5, 6]
        assert page.total == 6
        assert page.last_page == 2
        assert page.first_item == 5
        assert page.last_item == 6
        assert page.has_more_pages is False

    def test_payload_links(self, conn):
        page = _listing(conn, page=2, per_page=2)
        payload = page.to_payload(lambda n: f"/people?page={n}")
        assert payload["pagination"] == {
            "current_page": 2,
            "per_page": 2,
            "total": 6,
            "last_page": 3,
            "from": 3,
            "to": 4,
            "has_more_pages": True,
        }
        assert payload["links"] == {
            "first": "/people?page=1",
            "last": "/people?page=3",
            "prev": "/people?page=1",
            "next": "/people?page=3",
        }

    def test_first_page_has_no_prev_link(self, conn):
        payload = _listing(conn, per_page=10).to_payload(lambda n: f"?page={n}")
        assert payload["links"]["prev"] is None
        assert payload["links"]["next"] is None

    def test_page_past_the_end_is_empty_but_keeps_total(self, conn):
        page = _listing(conn, page=9, per_page=5)
        assert page.items == []
        assert page.total == 6
        assert page.last_page == 2

    def test_map_keeps_numbers(self, conn):
        page = _listing(conn, per_page=2).map(lambda row: row.name)
        assert page.items == ["Carlos Pérez", "Lucia Gómez"]
        assert page.total == 6


class TestListingSpec:
    def test_default_sort_must_be_sortable(self):
        with pytest.raises(ValueError):
            ListingSpec(search_columns=(), sort_columns={"id": _people.c.id}, default_sort="name")

    def test_default_dir_must_be_valid(self):
        with pytest.raises(ValueError):
            ListingSpec(search_columns=(), sort_columns={"id": _people.c.id}, default_sort="id", default_dir="up")
