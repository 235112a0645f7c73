"""
placement/models.py -- Domain dataclasses for tests, teams, and test records.

These are pure data containers with zero logic. Business rules (existence
checks, team gating, ownership) live in placement/service.py and
auth/policy.py.

Users are referenced by id only; their data stays in auth/.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Test:
    """A placement test published for one team.

    id is None before the record is written to the database.
    """

    __test__ = False  # keep pytest from collecting this class

    title: str
    team_id: int
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class TeamMember:
    """A user's membership in a team. Only verified memberships grant access."""

    team_id: int
    user_id: int
    verified: bool = False
    id: Optional[int] = None


@dataclass
class Applied:
    """A user applying for a test."""

    user_id: int
    test_id: int
    applied_at: str = ""  # ISO 8601, defaults to insert time
    id: Optional[int] = None


@dataclass
class Completed:
    """A user having completed a test."""

    user_id: int
    test_id: int
    completed_at: str = ""  # ISO 8601, defaults to insert time
    id: Optional[int] = None


@dataclass
class ListQuery:
    """Page / limit / sort for record listings.

    sort is a column name, "-" prefixed for descending (e.g. "-applied_at").
    """

    page: int = 1
    limit: int = 100
    sort: Optional[str] = None
