"""Unit tests for placement/store.py -- tests, team membership, and record CRUD.

Covers:
- create/get/list tests
- add_team_member() upserts the verified flag
- is_verified_member() joins membership to the test's team
- record CRUD for both kinds, default newest-first order, pagination, sort
- unknown kinds, sort columns and update fields raise ValueError
"""

import pytest

from placement.models import Applied, Completed, ListQuery, TeamMember, Test
from placement.store import PlacementStore


@pytest.fixture
def seeded(placement_store: PlacementStore) -> tuple[PlacementStore, int, int]:
    """Store with two tests: one for team 1, one for team 2."""
    t1 = placement_store.create_test(Test(title="Aptitude", team_id=1))
    t2 = placement_store.create_test(Test(title="Coding", team_id=2))
    return placement_store, t1, t2


def test_tests_round_trip(seeded) -> None:
    store, t1, t2 = seeded
    test = store.get_test(t1)
    assert test.title == "Aptitude"
    assert test.team_id == 1
    assert test.created_at
    assert [t.id for t in store.list_tests()] == [t1, t2]
    assert store.get_test(999) is None


def test_membership_upsert_and_lookup(seeded) -> None:
    store, t1, t2 = seeded
    first = store.add_team_member(TeamMember(team_id=1, user_id=5))
    assert store.is_verified_member(t1, 5) is False

    again = store.add_team_member(TeamMember(team_id=1, user_id=5, verified=True))
    assert again == first
    assert store.is_verified_member(t1, 5) is True
    # Membership in team 1 says nothing about team 2's test.
    assert store.is_verified_member(t2, 5) is False
    assert store.is_verified_member(999, 5) is False


def test_record_crud(seeded) -> None:
    store, t1, t2 = seeded
    rid = store.create_record("applied", Applied(user_id=5, test_id=t1))
    record = store.get_record("applied", rid)
    assert isinstance(record, Applied)
    assert record.user_id == 5 and record.test_id == t1
    assert record.applied_at

    assert store.update_record("applied", rid, test_id=t2)
    assert store.get_record("applied", rid).test_id == t2

    assert store.delete_record("applied", rid)
    assert store.get_record("applied", rid) is None
    assert store.delete_record("applied", rid) is False
    assert store.update_record("applied", rid, test_id=t1) is False


def test_kinds_are_separate(seeded) -> None:
    store, t1, _ = seeded
    rid = store.create_record("completed", Completed(user_id=5, test_id=t1))
    assert isinstance(store.get_record("completed", rid), Completed)
    assert store.list_records("applied") == []


def test_list_order_filter_and_pages(seeded) -> None:
    store, t1, _ = seeded
    for ts in ["2024-01-01T00:00:00+00:00", "2024-03-01T00:00:00+00:00", "2024-02-01T00:00:00+00:00"]:
        store.create_record("applied", Applied(user_id=5, test_id=t1, applied_at=ts))
    store.create_record("applied", Applied(user_id=6, test_id=t1, applied_at="2023-12-01T00:00:00+00:00"))

    newest_first = [r.applied_at[:7] for r in store.list_records("applied", user_id=5)]
    assert newest_first == ["2024-03", "2024-02", "2024-01"]

    oldest_first = store.list_records("applied", query=ListQuery(sort="applied_at"))
    assert oldest_first[0].user_id == 6

    page2 = store.list_records("applied", user_id=5, query=ListQuery(page=2, limit=2))
    assert [r.applied_at[:7] for r in page2] == ["2024-01"]


def test_invalid_inputs(seeded) -> None:
    store, t1, _ = seeded
    with pytest.raises(ValueError):
        store.list_records("applied", query=ListQuery(sort="password"))
    with pytest.raises(ValueError):
        store.get_record("interviews", 1)
    rid = store.create_record("applied", Applied(user_id=5, test_id=t1))
    with pytest.raises(ValueError):
        store.update_record("applied", rid, user_id=6)
    with pytest.raises(ValueError):
        store.update_record("applied", rid, completed_at="2024-01-01T00:00:00+00:00")
