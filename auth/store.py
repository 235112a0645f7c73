"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as placement/store.py).
UserStore is the repository; _row_to_user is the mapper. Services and route
code never touch SQL directly.

Explicit persistence steps (no implicit hooks):
  _hash_password_fields() runs before every insert/update. If the incoming
      fields carry a plaintext "password", it is replaced by its bcrypt hash
      and, for existing accounts, password_changed_at is stamped.
  _active_only() is applied to every SELECT unless include_inactive=True,
      so soft-deleted accounts (is_active=0) are invisible by default.
  _project() drops hashed_password from every returned User unless the
      caller passes with_password=True.

Security:
  All queries use bound parameters. No f-strings in SQL.
  email is lower-cased before every write and lookup; the UNIQUE index then
  gives case-insensitive uniqueness.

Timestamps are stored as fixed-width UTC ISO 8601 strings so that string
comparison in SQL orders them correctly (used by the reset-token expiry check).

Layer rule: no imports from api/, placement/, or mail/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import User
from auth.tokens import hash_password

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("photo", String(255), nullable=False, server_default="default.jpg"),
    Column("role", String(10), nullable=False, server_default="user"),
    Column("hashed_password", Text, nullable=False),
    Column("password_changed_at", String(32)),
    Column("password_reset_token", String(64), index=True),  # sha256 hex
    Column("password_reset_expires", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("confirmed", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

# Fields update_user() accepts. "password" is plaintext and gets hashed.
_UPDATABLE = {
    "name",
    "photo",
    "role",
    "password",
    "password_reset_token",
    "password_reset_expires",
    "is_active",
    "confirmed",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(value: datetime) -> str:
    """Format a datetime as a fixed-width UTC ISO 8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(name="Ada", email="ada@example.com"), password="s3cretpass")
        user = store.get_by_email("ADA@example.com")           # no password hash
        user = store.get_by_id(uid, with_password=True)        # includes the hash
        store.close()
    """

    def __init__(self, db_url: str, bcrypt_rounds: int = 12) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self._bcrypt_rounds = bcrypt_rounds
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Explicit persistence steps
    # ------------------------------------------------------------------

    def _hash_password_fields(self, fields: dict, *, is_new: bool) -> dict:
        """Replace a plaintext "password" with "hashed_password".

        On existing accounts password_changed_at is stamped with the current
        time. The stamp is taken before the replacement token is issued, so
        only tokens issued earlier compare as stale.
        """
        if "password" not in fields:
            return fields
        prepared = dict(fields)
        plain = prepared.pop("password")
        prepared["hashed_password"] = hash_password(plain, rounds=self._bcrypt_rounds)
        if not is_new:
            prepared["password_changed_at"] = to_iso(_now())
        return prepared

    @staticmethod
    def _active_only(stmt, include_inactive: bool):
        return stmt if include_inactive else stmt.where(_users.c.is_active == 1)

    @staticmethod
    def _project(user: User, with_password: bool) -> User:
        if not with_password:
            user.hashed_password = None
        return user

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AuthService maps that to a ValidationError.
        """
        values = self._hash_password_fields(
            {
                "name": user.name,
                "email": _normalize_email(user.email),
                "photo": user.photo,
                "role": user.role,
                "password": password,
                "is_active": 1 if user.is_active else 0,
                "confirmed": 1 if user.confirmed else 0,
                "created_at": to_iso(_now()),
            },
            is_new=True,
        )
        with self.engine.connect() as conn:
            result = conn.execute(_users.insert().values(**values))
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: see _UPDATABLE. Booleans are stored as 0/1 and
        datetimes as ISO strings; None clears a nullable column.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        values = self._hash_password_fields(fields, is_new=False)
        for key in ("is_active", "confirmed"):
            if key in values:
                values[key] = 1 if values[key] else 0
        if isinstance(values.get("password_reset_expires"), datetime):
            values["password_reset_expires"] = to_iso(values["password_reset_expires"])
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int, *, with_password: bool = False, include_inactive: bool = False) -> User | None:
        """Look up a user by primary key. Returns None if not found (or inactive)."""
        stmt = self._active_only(_users.select().where(_users.c.id == user_id), include_inactive)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._project(_row_to_user(row), with_password) if row is not None else None

    def get_by_email(
        self, email: str, *, with_password: bool = False, include_inactive: bool = False
    ) -> User | None:
        """Look up a user by e-mail, case-insensitively."""
        stmt = self._active_only(
            _users.select().where(_users.c.email == _normalize_email(email)),
            include_inactive,
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._project(_row_to_user(row), with_password) if row is not None else None

    def get_by_reset_token(self, token_hash: str, now: datetime | None = None) -> User | None:
        """Return the active user holding this reset-token hash, if it has not expired."""
        cutoff = to_iso(now or _now())
        stmt = self._active_only(
            _users.select().where(
                (_users.c.password_reset_token == token_hash) & (_users.c.password_reset_expires > cutoff)
            ),
            include_inactive=False,
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return self._project(_row_to_user(row), False) if row is not None else None

    def list_users(self, *, include_inactive: bool = False) -> list[User]:
        """Return users ordered by name. Admin-only operation."""
        stmt = self._active_only(_users.select().order_by(_users.c.name), include_inactive)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [self._project(_row_to_user(r), False) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        photo=row.photo,
        role=row.role,
        hashed_password=row.hashed_password,
        password_changed_at=from_iso(row.password_changed_at),
        password_reset_token=row.password_reset_token,
        password_reset_expires=from_iso(row.password_reset_expires),
        is_active=bool(row.is_active),
        confirmed=bool(row.confirmed),
        created_at=row.created_at,
    )
