"""
API request and response models for the placement REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
placement/models.py, which own the internal domain representation. Route
handlers map between the two.

Every response uses the same envelope:

    {"status": "success" | "failed" | "error", "data": {...}}

Auth responses that start a session add "token"; list responses add
"results" (number of items on the page).

UserOut has no password field of any kind -- the hash cannot leak through a
response even if a handler passes a User fetched with with_password=True.
"""

from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User
from placement.store import Record

# Passwords above 72 bytes are truncated by bcrypt; keep well below.
_PASSWORD_MAX = 64


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Top-level response body."""

    model_config = ConfigDict(frozen=True)

    status: str = "success"
    token: Optional[str] = None
    results: Optional[int] = None
    data: Optional[dict[str, Any]] = None

    def body(self) -> dict:
        return self.model_dump(exclude_none=True)


class ErrorData(BaseModel):
    """Payload of a failed/error envelope."""

    model_config = ConfigDict(frozen=True)

    message: str
    detail: Optional[str] = None


def success(data: Optional[dict] = None, **extra) -> dict:
    return Envelope(status="success", data=data, **extra).body()


def failure(status_code: int, message: str, detail: Optional[str] = None) -> dict:
    status = "failed" if 400 <= status_code < 500 else "error"
    return Envelope(status=status, data=ErrorData(message=message, detail=detail).model_dump(exclude_none=True)).body()


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------
#
# Fields are optional on purpose: AuthService owns the "missing field" and
# "mismatch" checks so they surface as 400 ValidationError with a readable
# message, same as any other domain failure.


class SignUpRequest(BaseModel):
    """Request body for POST /users/signup.

    role and confirmed are parsed but AuthService drops them unless
    ALLOW_PRIVILEGED_SIGNUP is set.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    photo: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    password_confirmation: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    role: Optional[str] = None
    confirmed: Optional[bool] = None


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)


class EmailRequest(BaseModel):
    """Body for forgot-password and resend-confirmation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    password_confirmation: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)


class UpdatePasswordRequest(BaseModel):
    current_password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    new_password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    new_password_confirmation: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Record request models
# ---------------------------------------------------------------------------


class RecordCreate(BaseModel):
    """Body for POST /applied and /completed.

    user_id defaults to the caller; the nested /users/{user_id}/... routes
    take it from the path instead.
    """

    test_id: int = Field(gt=0)
    user_id: Optional[int] = Field(default=None, gt=0)


class RecordUpdate(BaseModel):
    """Body for PATCH /applied/{id} and /completed/{id}.

    Only the timestamp matching the record kind is applied; the other one is
    ignored. Timestamps without an offset are taken as UTC.
    """

    test_id: Optional[int] = Field(default=None, gt=0)
    applied_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Public view of a user account."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    photo: str
    role: str
    confirmed: bool

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            photo=user.photo,
            role=user.role,
            confirmed=user.confirmed,
        )


def record_out(record: Record) -> dict:
    return asdict(record)


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
