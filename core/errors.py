"""
core/errors.py -- Operational error taxonomy.

Every expected, user-facing failure is an AppError subclass carrying the HTTP
status it maps to. Domain code (auth/, placement/) raises these; api/main.py
turns them into the response envelope:

    {"status": "failed" | "error", "data": {"message": ...}}

Anything that is NOT an AppError is a programmer error and surfaces as an
opaque 500 without detail.

Layer rule: no imports from other project packages.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for operational errors (safe to show the message to clients)."""

    status_code: int = 500
    is_operational: bool = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        """Envelope status: "failed" for client errors, "error" for server errors."""
        return "failed" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    """Client-fixable input problem."""

    status_code = 400


class AuthError(AppError):
    """Bad, missing, or stale credentials."""

    status_code = 401


class AuthzError(AppError):
    """Authenticated but not allowed (role or ownership)."""

    status_code = 403


class NotFound(AppError):
    status_code = 404


class ServerError(AppError):
    """A collaborator (mail delivery, ...) failed."""

    status_code = 500
