"""
placement/service.py -- CRUD over Applied and Completed test records.

RecordService holds the shared flow; AppliedService and CompletedService
only differ in record kind and in the extra team check Completed needs:

  create   -- owning user must exist (NotFound), test must exist (NotFound),
              acting user owner/admin (AuthzError);
              Completed: acting admin, or the owner is a verified member of
              the test's team (AuthzError otherwise)
  update   -- record must exist (NotFound), acting user owner/admin (AuthzError);
              the timestamp must parse as a date and time (ValidationError)
              and is stored in UTC
  delete   -- same as update

User existence is read from auth's UserStore; user data is never copied.
The existence checks and the write are separate statements -- a concurrent
delete in between is tolerated.
"""

import logging
from datetime import datetime
from typing import Optional

from auth import policy
from auth.models import User
from auth.store import UserStore, to_iso
from core.errors import AuthzError, NotFound, ValidationError
from placement.models import Applied, Completed, ListQuery
from placement.store import PlacementStore, Record

logger = logging.getLogger("placement.records")


def _normalize_timestamp(field: str, value) -> str:
    """Return value as the stored UTC ISO string. Naive datetimes are taken as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid {field}: expected an ISO 8601 date and time.") from exc
    if not isinstance(value, datetime):
        raise ValidationError(f"Invalid {field}: expected an ISO 8601 date and time.")
    return to_iso(value)


class RecordService:
    kind: str = ""
    label: str = ""
    timestamp_field: str = ""
    record_cls: type = object

    def __init__(self, store: PlacementStore, users: UserStore) -> None:
        self.store = store
        self.users = users

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _check_create_allowed(self, owner: User, test_id: int, acting_user: User) -> None:
        """Gate for create(). Records are written for yourself unless you are an admin."""
        policy.ensure_can_mutate(owner.id, acting_user)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("No user exists with the given id.")
        return user

    def _require_test(self, test_id: int) -> None:
        if self.store.get_test(test_id) is None:
            raise NotFound("No test exists with the given id.")

    def _require_record(self, record_id: int) -> Record:
        record = self.store.get_record(self.kind, record_id)
        if record is None:
            raise NotFound(f"No {self.label} was found with the given id.")
        return record

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def list(self, user_id: Optional[int] = None, query: Optional[ListQuery] = None) -> list[Record]:
        if user_id is not None:
            self._require_user(user_id)
        try:
            return self.store.list_records(self.kind, user_id=user_id, query=query)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def get(self, record_id: int) -> Record:
        return self._require_record(record_id)

    def create(self, user_id: int, test_id: int, acting_user: User) -> Record:
        owner = self._require_user(user_id)
        self._require_test(test_id)
        self._check_create_allowed(owner, test_id, acting_user)
        record_id = self.store.create_record(self.kind, self.record_cls(user_id=user_id, test_id=test_id))
        logger.info("User %s added %s %s for user %s", acting_user.id, self.kind, record_id, user_id)
        return self.store.get_record(self.kind, record_id)

    def update(self, record_id: int, changes: dict, acting_user: User) -> Record:
        record = self._require_record(record_id)
        policy.ensure_can_mutate(record.user_id, acting_user)
        allowed = ("test_id", self.timestamp_field)
        changes = {k: v for k, v in changes.items() if k in allowed and v is not None}
        if "test_id" in changes:
            self._require_test(changes["test_id"])
        field = self.timestamp_field
        if field in changes:
            changes[field] = _normalize_timestamp(field, changes[field])
        self.store.update_record(self.kind, record_id, **changes)
        return self._require_record(record_id)

    def delete(self, record_id: int, acting_user: User) -> None:
        record = self._require_record(record_id)
        policy.ensure_can_mutate(record.user_id, acting_user)
        self.store.delete_record(self.kind, record_id)
        logger.info("User %s deleted %s %s", acting_user.id, self.kind, record_id)


class AppliedService(RecordService):
    kind = "applied"
    label = "applied test"
    timestamp_field = "applied_at"
    record_cls = Applied


class CompletedService(RecordService):
    kind = "completed"
    label = "completed test"
    timestamp_field = "completed_at"
    record_cls = Completed

    def _check_create_allowed(self, owner: User, test_id: int, acting_user: User) -> None:
        super()._check_create_allowed(owner, test_id, acting_user)
        if policy.has_role(acting_user, policy.ADMIN):
            return
        if not policy.is_team_member(self.store, test_id, owner.id):
            raise AuthzError("You don't belong in this team to mark this test as completed.")
