"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session token is taken from, in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "jwt" cookie -- set by the login/signup responses for browsers.

get_current_user() hands the token to AuthService.authenticate(), which
raises AuthError (401) for missing, invalid, expired, orphaned, or stale
tokens, and for accounts that have not confirmed their e-mail yet.
restrict_to(*roles) builds on it and raises AuthzError (403). api/main.py
turns both into the response envelope.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/ or placement/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import User
from auth.service import AuthService
from auth.tokens import COOKIE_NAME


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(COOKIE_NAME) or None


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    return get_auth_service(request).authenticate(extract_token(request))


def restrict_to(*roles: str):
    """Build a dependency that admits only the given roles.

    Use as:
        @router.get("/users", dependencies=[Depends(restrict_to("admin"))])
    or
        def route(user: User = Depends(restrict_to("admin", "rep"))): ...
    """

    def dependency(user: User = Depends(get_current_user)) -> User:
        return AuthService.restrict_to(user, *roles)

    return dependency
