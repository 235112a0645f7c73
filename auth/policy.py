"""
auth/policy.py -- Access policy: role and ownership predicates.

Every authorization decision about dependent resources goes through these
functions so the rules live in one place and can be tested without HTTP:

  has_role(user, *roles)               -- role gate (restrict_to builds on it)
  can_mutate(owner_id, acting_user)    -- owner or admin may change a record
  is_team_member(directory, test, uid) -- verified member of the test's team

The predicates return bools. The ensure_* variants raise AuthzError and are
what service code calls.

Team data is not owned by auth/. is_team_member() asks a TeamDirectory, which
placement.store.PlacementStore implements.

Layer rule: no imports from api/, placement/, or mail/.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import User
from core.errors import AuthzError

ADMIN = "admin"


class TeamDirectory(Protocol):
    def is_verified_member(self, test_id: int, user_id: int) -> bool: ...


def has_role(user: User, *roles: str) -> bool:
    return user.role in roles


def can_mutate(resource_owner_id: int, acting_user: User) -> bool:
    """True if acting_user owns the resource or is an admin."""
    return acting_user.id == resource_owner_id or acting_user.role == ADMIN


def is_team_member(directory: TeamDirectory, test_id: int, user_id: int) -> bool:
    """True if user_id holds a verified membership in the team that owns test_id."""
    return directory.is_verified_member(test_id, user_id)


def ensure_role(user: User, *roles: str) -> None:
    if not has_role(user, *roles):
        raise AuthzError("You're not allowed to access this route.")


def ensure_can_mutate(resource_owner_id: int, acting_user: User) -> None:
    if not can_mutate(resource_owner_id, acting_user):
        raise AuthzError("You don't have permission to do this action.")
