"""
tests/test_user_store.py -- Unit tests for auth/store.py.

Covers:
  - Users: create, lowercase email, lookup by id/email, unique email
  - Access tokens: create, lookup by hash, touch, delete one, replace
  - rotate_credentials(): new password, every old token gone, one new token,
    reset-token consumption that fails cleanly once the token is gone
  - Password reset tokens: one per email, replaced on re-issue
  - page_users(): search and default sort
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import StaleResetToken
from core.listing import PageRequest


def _add_user(users, name="Ana", email="ana@example.com", hashed_password="x"):
    return users.create_user(User(name=name, email=email, hashed_password=hashed_password))


class TestUsers:
    def test_create_and_lookup(self, stores):
        users, _ = stores
        uid = _add_user(users, email="Ana@Example.com")
        user = users.get_by_id(uid)
        assert user.email == "ana@example.com"
        assert user.name == "Ana"
        assert user.created_at is not None
        assert users.get_by_email("ANA@example.COM").id == uid

    def test_unknown_user(self, stores):
        users, _ = stores
        assert users.get_by_id(999) is None
        assert users.get_by_email("ghost@example.com") is None

    def test_email_is_unique_case_insensitively(self, stores):
        users, _ = stores
        _add_user(users, email="ana@example.com")
        with pytest.raises(IntegrityError):
            _add_user(users, email="ANA@example.com")


class TestAccessTokens:
    """Opaque bearer token records."""

    def test_create_lookup_touch(self, stores):
        users, _ = stores
        uid = _add_user(users)
        token_id = users.create_token(uid, "h1", None)
        record = users.get_token_by_hash("h1")
        assert record.id == token_id
        assert record.user_id == uid
        assert record.name == "auth_token"
        assert record.last_used_at is None
        users.touch_token(token_id)
        assert users.get_token_by_hash("h1").last_used_at is not None

    def test_delete_one_token_keeps_the_others(self, stores):
        users, _ = stores
        uid = _add_user(users)
        first = users.create_token(uid, "h1")
        users.create_token(uid, "h2")
        assert users.delete_token(first) is True
        assert users.get_token_by_hash("h1") is None
        assert users.get_token_by_hash("h2") is not None
        assert users.delete_token(first) is False

    def test_replace_token(self, stores):
        users, _ = stores
        uid = _add_user(users)
        old = users.create_token(uid, "old")
        users.replace_token(old, uid, "new", None)
        assert users.get_token_by_hash("old") is None
        assert users.get_token_by_hash("new").user_id == uid


class TestRotateCredentials:
    def test_revokes_every_token_and_issues_one(self, stores):
        users, _ = stores
        uid = _add_user(users, hashed_password="old-hash")
        users.create_token(uid, "t1")
        users.create_token(uid, "t2")
        users.rotate_credentials(uid, "new-hash", "fresh", None)
        assert users.get_by_id(uid).hashed_password == "new-hash"
        assert users.get_token_by_hash("t1") is None
        assert users.get_token_by_hash("t2") is None
        assert users.get_token_by_hash("fresh").user_id == uid

    def test_leaves_other_users_tokens_alone(self, stores):
        users, _ = stores
        ana = _add_user(users)
        bruno = _add_user(users, name="Bruno", email="bruno@example.com")
        users.create_token(ana, "a1")
        users.create_token(bruno, "b1")
        users.rotate_credentials(ana, "new-hash", "fresh", None)
        assert users.get_token_by_hash("a1") is None
        assert users.get_token_by_hash("b1").user_id == bruno

    def test_consumes_reset_token(self, stores):
        users, _ = stores
        uid = _add_user(users)
        users.put_reset_token("ana@example.com", "reset-hash")
        users.rotate_credentials(uid, "new-hash", "fresh", None, consume_reset=("Ana@example.com", "reset-hash"))
        assert users.get_reset_token("ana@example.com") is None

    @pytest.mark.parametrize("reset_hash", ["reset-hash", "other-hash"])
    def test_stale_reset_token_writes_nothing(self, stores, reset_hash):
        users, _ = stores
        uid = _add_user(users, hashed_password="old-hash")
        users.create_token(uid, "t1")
        users.put_reset_token("ana@example.com", "reset-hash")
        users.rotate_credentials(uid, "first-hash", "first", None, consume_reset=("ana@example.com", "reset-hash"))
        users.put_reset_token("ana@example.com", "replacement")

        with pytest.raises(StaleResetToken):
            users.rotate_credentials(uid, "second-hash", "second", None, consume_reset=("ana@example.com", reset_hash))

        assert users.get_by_id(uid).hashed_password == "first-hash"
        assert users.get_token_by_hash("first").user_id == uid
        assert users.get_token_by_hash("second") is None
        assert users.get_reset_token("ana@example.com").token_hash == "replacement"


class TestResetTokens:
    def test_one_outstanding_token_per_email(self, stores):
        users, _ = stores
        users.put_reset_token("Ana@example.com", "first")
        users.put_reset_token("ana@example.com", "second")
        record = users.get_reset_token("ANA@example.com")
        assert record.email == "ana@example.com"
        assert record.token_hash == "second"

    def test_delete(self, stores):
        users, _ = stores
        users.put_reset_token("ana@example.com", "first")
        users.delete_reset_token("ana@example.com")
        assert users.get_reset_token("ana@example.com") is None


class TestPageUsers:
    def test_search_and_default_sort(self, stores):
        users, _ = stores
        carlos = _add_user(users, name="Carlos", email="carlos@example.com")
        _add_user(users, name="Lucia", email="lucia@example.com")
        other = _add_user(users, name="Maria", email="maria.carlos@example.com")
        page = users.page_users(PageRequest(search="carlos"))
        assert [u.id for u in page.items] == [carlos, other]
        assert page.total == 2

    def test_sort_by_email_desc(self, stores):
        users, _ = stores
        _add_user(users, name="Ana", email="ana@example.com")
        _add_user(users, name="Bruno", email="bruno@example.com")
        page = users.page_users(PageRequest(sort_by="email", sort_dir="desc"))
        assert [u.email for u in page.items] == ["bruno@example.com", "ana@example.com"]


def test_ping(stores):
    users, _ = stores
    assert users.ping() is True
