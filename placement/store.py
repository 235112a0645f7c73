"""
placement/store.py -- SQLAlchemy-backed persistence for tests, teams, and test records.

Uses SQLAlchemy Core (not ORM) so the dataclasses in placement/models.py stay
the authoritative domain representation.

Pattern: Repository + Data Mapper. PlacementStore is the repository; the
_row_to_* functions are the mappers. Services never touch SQL directly.

Applied and Completed rows share one shape (user_id, test_id, timestamp), so
their CRUD is written once and keyed by record kind ("applied" | "completed").

PlacementStore also implements auth.policy.TeamDirectory through
is_verified_member().

Security: all queries use bound parameters. Sort columns are checked against
a whitelist before reaching order_by().

Usage:
    store = PlacementStore("sqlite:///:memory:")
    test_id = store.create_test(Test(title="Aptitude round 1", team_id=3))
    store.add_team_member(TeamMember(team_id=3, user_id=7, verified=True))
    rec = store.create_record("completed", Completed(user_id=7, test_id=test_id))
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import Column, Integer, MetaData, String, Table, UniqueConstraint, create_engine, event, select
from sqlalchemy.engine import Engine

from placement.models import Applied, Completed, ListQuery, TeamMember, Test

Record = Union[Applied, Completed]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_tests = Table(
    "tests",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("team_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_team_members = Table(
    "team_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("team_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("verified", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    UniqueConstraint("team_id", "user_id", name="uq_team_user"),
)

_applied = Table(
    "applied",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("test_id", Integer, nullable=False),
    Column("applied_at", String(32), nullable=False),
)

_completed = Table(
    "completed",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("test_id", Integer, nullable=False),
    Column("completed_at", String(32), nullable=False),
)

# kind -> (table, timestamp column, dataclass)
_RECORDS = {
    "applied": (_applied, "applied_at", Applied),
    "completed": (_completed, "completed_at", Completed),
}

_MAX_LIMIT = 500


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _record_table(kind: str):
    try:
        return _RECORDS[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind {kind!r}") from None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PlacementStore:
    """Repository for Test, TeamMember, Applied and Completed entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Tests and teams
    # ------------------------------------------------------------------

    def create_test(self, test: Test) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _tests.insert().values(title=test.title, team_id=test.team_id, created_at=_now_iso())
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_test(self, test_id: int) -> Optional[Test]:
        with self.engine.connect() as conn:
            row = conn.execute(_tests.select().where(_tests.c.id == test_id)).fetchone()
        return _row_to_test(row) if row is not None else None

    def list_tests(self) -> list[Test]:
        with self.engine.connect() as conn:
            rows = conn.execute(_tests.select().order_by(_tests.c.id)).fetchall()
        return [_row_to_test(r) for r in rows]

    def add_team_member(self, member: TeamMember) -> int:
        """Insert a membership, or update the verified flag if it already exists."""
        with self.engine.connect() as conn:
            existing = conn.execute(
                _team_members.select().where(
                    (_team_members.c.team_id == member.team_id) & (_team_members.c.user_id == member.user_id)
                )
            ).fetchone()
            if existing is not None:
                conn.execute(
                    _team_members.update()
                    .where(_team_members.c.id == existing.id)
                    .values(verified=1 if member.verified else 0)
                )
                conn.commit()
                return existing.id
            result = conn.execute(
                _team_members.insert().values(
                    team_id=member.team_id,
                    user_id=member.user_id,
                    verified=1 if member.verified else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def is_verified_member(self, test_id: int, user_id: int) -> bool:
        """True if user_id is a verified member of the team that owns test_id."""
        stmt = (
            select(_team_members.c.id)
            .select_from(_team_members.join(_tests, _tests.c.team_id == _team_members.c.team_id))
            .where(
                (_tests.c.id == test_id) & (_team_members.c.user_id == user_id) & (_team_members.c.verified == 1)
            )
            .limit(1)
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt).fetchone() is not None

    # ------------------------------------------------------------------
    # Applied / Completed records
    # ------------------------------------------------------------------

    def create_record(self, kind: str, record: Record) -> int:
        table, ts_col, _cls = _record_table(kind)
        values = {
            "user_id": record.user_id,
            "test_id": record.test_id,
            ts_col: getattr(record, ts_col) or _now_iso(),
        }
        with self.engine.connect() as conn:
            result = conn.execute(table.insert().values(**values))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_record(self, kind: str, record_id: int) -> Optional[Record]:
        table, _ts, cls = _record_table(kind)
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.id == record_id)).fetchone()
        return _row_to_record(cls, row) if row is not None else None

    def list_records(self, kind: str, user_id: Optional[int] = None, query: Optional[ListQuery] = None) -> list[Record]:
        """Return records, optionally only one user's, paginated and sorted.

        Default order is newest first by the record timestamp. Unknown sort
        columns raise ValueError.
        """
        table, ts_col, cls = _record_table(kind)
        query = query or ListQuery()
        stmt = table.select()
        if user_id is not None:
            stmt = stmt.where(table.c.user_id == user_id)

        sort = query.sort or f"-{ts_col}"
        column_name = sort.lstrip("-")
        if column_name not in table.c:
            raise ValueError(f"Cannot sort by {column_name!r}")
        column = table.c[column_name]
        stmt = stmt.order_by(column.desc() if sort.startswith("-") else column.asc(), table.c.id)

        limit = max(1, min(query.limit, _MAX_LIMIT))
        page = max(1, query.page)
        stmt = stmt.limit(limit).offset((page - 1) * limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_record(cls, r) for r in rows]

    def update_record(self, kind: str, record_id: int, **fields) -> bool:
        """Update test_id and/or the timestamp. Returns False if the record is gone."""
        table, ts_col, _cls = _record_table(kind)
        unknown = set(fields) - {"test_id", ts_col}
        if unknown:
            raise ValueError(f"Unknown {kind} fields: {unknown!r}")
        if not fields:
            return self.get_record(kind, record_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(table.update().where(table.c.id == record_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_record(self, kind: str, record_id: int) -> bool:
        table, _ts, _cls = _record_table(kind)
        with self.engine.connect() as conn:
            result = conn.execute(table.delete().where(table.c.id == record_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_test(row) -> Test:
    return Test(id=row.id, title=row.title, team_id=row.team_id, created_at=row.created_at)


def _row_to_record(cls, row) -> Record:
    return cls(**dict(row._mapping))
