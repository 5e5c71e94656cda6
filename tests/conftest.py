"""
tests/conftest.py -- Shared test fixtures for RoleGate unit and integration tests.

This module provides:
  - _make_test_stores(): isolated in-memory UserStore + RBACStore sharing one DB
  - RecordingResetLinkSender: captures reset links instead of logging them
  - _patch_lifespan(): wires test stores and services into app.state
  - stores: fresh, unseeded stores per test (unit tests)
  - seeded: fresh stores with the default roles/permissions (unit tests)
  - throttle: IdentityThrottle with the default login/forgot-password limits
  - reset_links: RecordingResetLinkSender
  - api: ApiHarness around a TestClient with a seeded DB and an admin token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process, so the
identity and RBAC stores also see each other's tables.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.service import IdentityService
from auth.store import UserStore
from auth.throttle import FORGOT_PASSWORD, LOGIN, IdentityThrottle
from auth.tokens import generate_access_token, hash_password, hash_token, token_expiry
from rbac.access import ProtectedNames
from rbac.admin import AdminService
from rbac.graph import PermissionGraph
from rbac.seed import seed_defaults
from rbac.store import RBACStore

DEFAULT_PASSWORD = "secret123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, RBACStore]:
    """Create both stores on one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules and
                   unit tests never share state.
    """
    db_url = f"sqlite:///file:test_rolegate_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=db_url), RBACStore(db_url=db_url)


def make_user(
    users: UserStore,
    name: str,
    email: str,
    password: str = DEFAULT_PASSWORD,
) -> int:
    return users.create_user(User(name=name, email=email, hashed_password=hash_password(password)))


def issue_token(users: UserStore, user_id: int) -> str:
    """Issue a bearer token straight through the store (no HTTP round trip)."""
    raw = generate_access_token()
    users.create_token(user_id, hash_token(raw), token_expiry())
    return raw


class RecordingResetLinkSender:
    """ResetLinkSender that keeps every (email, url) pair it was handed."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, email: str, url: str) -> None:
        self.sent.append((email, url))

    def last_token_for(self, email: str) -> str:
        for sent_email, url in reversed(self.sent):
            if sent_email == email:
                return parse_qs(urlparse(url).query)["token"][0]
        raise AssertionError(f"no reset link was sent to {email}")


def make_throttle() -> IdentityThrottle:
    return IdentityThrottle({LOGIN: "5/minute", FORGOT_PASSWORD: "3/minute"})


# ---------------------------------------------------------------------------
# Unit-test fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, RBACStore], None, None]:
    users, rbac = _make_test_stores(uuid.uuid4().hex)
    yield users, rbac
    rbac.close()
    users.close()


@pytest.fixture
def throttle() -> IdentityThrottle:
    return make_throttle()


@pytest.fixture
def reset_links() -> RecordingResetLinkSender:
    return RecordingResetLinkSender()


@pytest.fixture
def seeded(stores) -> tuple[UserStore, RBACStore]:
    _users, rbac = stores
    seed_defaults(rbac)
    return stores


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    """Everything an integration test needs: the client and the objects behind it."""

    client: TestClient
    users: UserStore
    rbac: RBACStore
    throttle: IdentityThrottle
    reset_links: RecordingResetLinkSender
    admin_id: int
    admin_token: str

    @staticmethod
    def headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @property
    def admin_headers(self) -> dict[str, str]:
        return self.headers(self.admin_token)

    def create_user(self, name: str, email: str, roles: tuple[str, ...] = (), password: str = DEFAULT_PASSWORD):
        """Create a user directly in the store and return (user_id, bearer token)."""
        user_id = make_user(self.users, name, email, password)
        if roles:
            self.rbac.add_user_roles(user_id, list(roles))
        return user_id, issue_token(self.users, user_id)


def _patch_lifespan(users: UserStore, rbac: RBACStore, throttle: IdentityThrottle, sender: RecordingResetLinkSender):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and services into app.state so TestClient
    routes see isolated test DBs rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        graph = PermissionGraph(rbac)
        app.state.user_store = users
        app.state.rbac_store = rbac
        app.state.graph = graph
        app.state.admin = AdminService(users, rbac, ProtectedNames(), graph)
        app.state.identity = IdentityService(users, throttle, sender, "http://frontend.test")
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    One TestClient (and one database) per test module. The default roles and
    permissions are seeded and an admin user holding the admin role is
    created before the client starts.
    """
    users, rbac = _make_test_stores(request.module.__name__.replace(".", "_"))
    seed_defaults(rbac)
    admin_id = make_user(users, "Test Admin", "admin@example.com")
    rbac.add_user_roles(admin_id, ["admin"])
    admin_token = issue_token(users, admin_id)

    throttle = make_throttle()
    sender = RecordingResetLinkSender()
    app.router.lifespan_context = _patch_lifespan(users, rbac, throttle, sender)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(
            client=client,
            users=users,
            rbac=rbac,
            throttle=throttle,
            reset_links=sender,
            admin_id=admin_id,
            admin_token=admin_token,
        )

    rbac.close()
    users.close()


@pytest.fixture(autouse=True)
def _reset_rate_limits(request) -> Generator[None, None, None]:
    """Start every test with empty slowapi and identity-throttle counters."""
    limiter.reset()
    if "api" in request.fixturenames:
        request.getfixturevalue("api").throttle.reset()
    yield
