"""Unit tests for auth/store.py -- UserStore persistence steps and lookups.

Covers:
- create_user() hashes the password and never returns the hash by default
- e-mail uniqueness is case-insensitive (IntegrityError on duplicate)
- update_user() with "password" rehashes and stamps password_changed_at
- soft-deleted users are hidden unless include_inactive=True
- get_by_reset_token() honours the expiry
- unknown fields are rejected by update_user()
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from auth.tokens import verify_password
from conftest import PASSWORD, add_user


def test_create_user_hashes_password(user_store: UserStore) -> None:
    uid = user_store.create_user(User(name="Ada", email="Ada@Example.com"), "s3cretpass")
    plain = user_store.get_by_id(uid)
    assert plain.hashed_password is None
    assert plain.email == "ada@example.com"
    assert plain.role == "user"
    assert plain.photo == "default.jpg"
    assert plain.confirmed is False
    assert plain.password_changed_at is None
    assert plain.created_at

    full = user_store.get_by_id(uid, with_password=True)
    assert full.hashed_password != "s3cretpass"
    assert verify_password("s3cretpass", full.hashed_password)


def test_duplicate_email_is_case_insensitive(user_store: UserStore) -> None:
    add_user(user_store, email="grace@example.com")
    with pytest.raises(IntegrityError):
        user_store.create_user(User(name="Grace", email="GRACE@example.com"), PASSWORD)


def test_get_by_email_ignores_case(user_store: UserStore) -> None:
    user = add_user(user_store, email="linus@example.com")
    assert user_store.get_by_email("LINUS@EXAMPLE.COM").id == user.id
    assert user_store.get_by_email("nobody@example.com") is None


def test_password_update_rehashes_and_stamps_change_time(user_store: UserStore) -> None:
    user = add_user(user_store)
    before = datetime.now(timezone.utc)
    assert user_store.update_user(user.id, password="brand-new-pass")

    updated = user_store.get_by_id(user.id, with_password=True)
    assert verify_password("brand-new-pass", updated.hashed_password)
    assert not verify_password(PASSWORD, updated.hashed_password)
    assert updated.password_changed_at is not None
    assert before <= updated.password_changed_at <= datetime.now(timezone.utc)


def test_non_password_update_leaves_change_time_alone(user_store: UserStore) -> None:
    user = add_user(user_store)
    user_store.update_user(user.id, name="Ada King", confirmed=False)
    updated = user_store.get_by_id(user.id)
    assert updated.name == "Ada King"
    assert updated.confirmed is False
    assert updated.password_changed_at is None


def test_update_missing_user_returns_false(user_store: UserStore) -> None:
    assert user_store.update_user(9999, name="Ghost") is False


def test_update_rejects_unknown_fields(user_store: UserStore) -> None:
    user = add_user(user_store)
    with pytest.raises(ValueError):
        user_store.update_user(user.id, email="other@example.com")


def test_soft_deleted_users_are_hidden(user_store: UserStore) -> None:
    active = add_user(user_store, "Active", "active@example.com")
    gone = add_user(user_store, "Gone", "gone@example.com")
    user_store.update_user(gone.id, is_active=False)

    assert user_store.get_by_id(gone.id) is None
    assert user_store.get_by_email("gone@example.com") is None
    assert user_store.get_by_id(gone.id, include_inactive=True).is_active is False
    assert [u.id for u in user_store.list_users()] == [active.id]
    assert len(user_store.list_users(include_inactive=True)) == 2
    assert user_store.count_users() == 2


def test_reset_token_lookup_honours_expiry(user_store: UserStore) -> None:
    user = add_user(user_store)
    now = datetime.now(timezone.utc)
    user_store.update_user(
        user.id,
        password_reset_token="a" * 64,
        password_reset_expires=now + timedelta(minutes=10),
    )
    found = user_store.get_by_reset_token("a" * 64)
    assert found is not None and found.id == user.id
    assert found.password_reset_expires > now

    assert user_store.get_by_reset_token("b" * 64) is None
    assert user_store.get_by_reset_token("a" * 64, now=now + timedelta(minutes=11)) is None


def test_clearing_reset_fields(user_store: UserStore) -> None:
    user = add_user(user_store)
    user_store.update_user(
        user.id,
        password_reset_token="c" * 64,
        password_reset_expires=datetime.now(timezone.utc) + timedelta(minutes=10),
    )
    user_store.update_user(user.id, password_reset_token=None, password_reset_expires=None)
    cleared = user_store.get_by_id(user.id)
    assert cleared.password_reset_token is None
    assert cleared.password_reset_expires is None
