"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

UserStore owns the users, personal_access_tokens and password_reset_tokens
tables. Rows leave this module only as auth/models.py dataclasses, built by
the _row_to_* functions.

Tokens are stored as HMAC hashes (auth/tokens.py), never raw.

One-statement writes use engine.connect() + commit(). Password change,
password reset and token refresh each touch two tables and run in a single
engine.begin() block.

Layer rule: no imports from api/ or rbac/. Import from core/ is allowed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.models import AccessToken, PasswordResetToken, User
from core.config import get_settings
from core.listing import ListingSpec, Page, PageRequest, run_listing

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # always lowercased
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_tokens = Table(
    "personal_access_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("name", String(100), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("created_at", String(32), nullable=False),
    Column("last_used_at", String(32)),
    Column("expires_at", String(32)),  # NULL = never expires
)

_password_resets = Table(
    "password_reset_tokens",
    _metadata,
    Column("email", String(255), primary_key=True),
    Column("token_hash", String(64), nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Admin user listing: search by name/email, sort by id/name/email, default id asc.
USER_LISTING = ListingSpec(
    search_columns=(_users.c.name, _users.c.email),
    sort_columns={"id": _users.c.id, "name": _users.c.name, "email": _users.c.email},
    default_sort="id",
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def build_engine(db_url: str) -> Engine:
    """Create an Engine with the SQLite tweaks every RoleGate store needs."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StaleResetToken(LookupError):
    """The reset token was consumed or replaced after the caller checked it."""


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, AccessToken, and PasswordResetToken entities.

    Usage:
        store = UserStore("sqlite:///rolegate.db")
        uid = store.create_user(User(name="Ana", email="ana@example.com", hashed_password=hash_password("secret12")))
        user = store.get_by_email("ana@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = build_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers check get_by_email() first for a friendly error and still catch
        IntegrityError for the race where two registrations interleave.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email.lower(),
                    hashed_password=user.hashed_password,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def page_users(self, request: PageRequest) -> Page[User]:
        """Return one page of users for the admin listing."""
        with self.engine.connect() as conn:
            return run_listing(conn, _users.select(), USER_LISTING, request, _row_to_user)

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def create_token(self, user_id: int, token_hash: str, expires_at: str | None = None) -> int:
        """Insert a new bearer token record and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _tokens.insert().values(
                    user_id=user_id,
                    name="auth_token",
                    token_hash=token_hash,
                    created_at=_now_iso(),
                    expires_at=expires_at,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_token_by_hash(self, token_hash: str) -> AccessToken | None:
        """Look up a bearer token by its HMAC hash. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_token(row) if row is not None else None

    def touch_token(self, token_id: int) -> None:
        """Stamp last_used_at on a token after each successful authentication."""
        with self.engine.connect() as conn:
            conn.execute(_tokens.update().where(_tokens.c.id == token_id).values(last_used_at=_now_iso()))
            conn.commit()

    def delete_token(self, token_id: int) -> bool:
        """Delete one token. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.id == token_id))
            conn.commit()
        return result.rowcount > 0

    def replace_token(self, old_token_id: int, user_id: int, token_hash: str, expires_at: str | None) -> int:
        """Atomically delete one token and issue its replacement. Returns the new token ID."""
        with self.engine.begin() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.id == old_token_id))
            result = conn.execute(
                _tokens.insert().values(
                    user_id=user_id,
                    name="auth_token",
                    token_hash=token_hash,
                    created_at=_now_iso(),
                    expires_at=expires_at,
                )
            )
            return result.inserted_primary_key[0]

    def rotate_credentials(
        self,
        user_id: int,
        hashed_password: str,
        token_hash: str,
        expires_at: str | None,
        consume_reset: tuple[str, str] | None = None,
    ) -> int:
        """Set a new password, revoke every token, and issue one fresh token.

        Runs as one transaction. consume_reset is an (email, token_hash) pair;
        when given, that exact reset row must still exist and is deleted first,
        otherwise StaleResetToken is raised and nothing is written. Returns the
        new token ID.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            if consume_reset is not None:
                email, reset_hash = consume_reset
                consumed = conn.execute(
                    _password_resets.delete().where(
                        _password_resets.c.email == email.lower(),
                        _password_resets.c.token_hash == reset_hash,
                    )
                )
                if consumed.rowcount == 0:
                    raise StaleResetToken(email)
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password, updated_at=now)
            )
            conn.execute(_tokens.delete().where(_tokens.c.user_id == user_id))
            result = conn.execute(
                _tokens.insert().values(
                    user_id=user_id,
                    name="auth_token",
                    token_hash=token_hash,
                    created_at=now,
                    expires_at=expires_at,
                )
            )
            return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def put_reset_token(self, email: str, token_hash: str) -> None:
        """Store a reset token for email, replacing any outstanding one."""
        email = email.lower()
        with self.engine.begin() as conn:
            conn.execute(_password_resets.delete().where(_password_resets.c.email == email))
            conn.execute(_password_resets.insert().values(email=email, token_hash=token_hash, created_at=_now_iso()))

    def get_reset_token(self, email: str) -> PasswordResetToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _password_resets.select().where(_password_resets.c.email == email.lower())
            ).fetchone()
        return _row_to_reset(row) if row is not None else None

    def delete_reset_token(self, email: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_password_resets.delete().where(_password_resets.c.email == email.lower()))
            conn.commit()

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_token(row) -> AccessToken:
    return AccessToken(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        token_hash=row.token_hash,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
        expires_at=row.expires_at,
    )


def _row_to_reset(row) -> PasswordResetToken:
    return PasswordResetToken(email=row.email, token_hash=row.token_hash, created_at=row.created_at)
