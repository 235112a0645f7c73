"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the shape.

Layer rule: no imports from api/, placement/, or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLES: tuple[str, ...] = ("user", "admin", "rep")


@dataclass
class User:
    """A placement-portal account.

    email is stored lower-cased; the UNIQUE index on it gives case-insensitive
    uniqueness.

    hashed_password is None on every User returned by UserStore unless the
    caller asked for it with with_password=True. Outward response models never
    carry it.

    password_reset_token holds sha256(plain_token), never the plain value that
    was mailed to the user.

    is_active=False is a soft delete: the store's lookups skip such rows.
    """

    name: str
    email: str
    role: str = "user"  # "user", "admin", "rep"
    photo: str = "default.jpg"
    id: int | None = None
    hashed_password: str | None = None
    password_changed_at: datetime | None = None
    password_reset_token: str | None = None
    password_reset_expires: datetime | None = None
    is_active: bool = True
    confirmed: bool = False
    created_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a session token."""

    user_id: int
    issued_at: int  # milliseconds since epoch ("iat_ms")


@dataclass(frozen=True)
class ResetToken:
    """A freshly generated password-reset token.

    plain goes into the mailed URL; hashed and expires_at are persisted.
    """

    plain: str
    hashed: str
    expires_at: datetime
