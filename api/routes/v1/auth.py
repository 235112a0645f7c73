"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST   /users/signup                  -- create account; token or "check your mail"
  POST   /users/login                   -- password login; sets "jwt" cookie
  GET    /users/logout                  -- clears cookie
  GET    /users/confirm/{token}         -- confirm e-mail; starts a session
  POST   /users/confirm/resend          -- re-send the confirmation link
  POST   /users/forgot-password         -- mail a reset link
  PATCH  /users/reset-password/{token}  -- set a new password with the mailed token
  PATCH  /users/update-password         -- change password (requires auth)
  GET    /users/me                      -- current user (requires auth)
  DELETE /users/me                      -- soft-delete own account (requires auth)
  GET    /users                         -- list accounts (admin only)

Every handler delegates to AuthService; AppError subclasses raised there are
rendered by the handlers in api/main.py. Handlers are plain `def` so bcrypt
work runs in FastAPI's thread pool instead of blocking the event loop.

Security:
  Login, signup, forgot-password and resend are rate-limited per IP.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import auth_rate_limit, limiter
from api.models import (
    EmailRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignUpRequest,
    UpdatePasswordRequest,
    UserOut,
    success,
)
from auth.dependencies import get_auth_service, get_current_user, restrict_to
from auth.models import User
from auth.service import AuthResult, AuthService
from auth.tokens import clear_auth_cookie, set_auth_cookie

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _session_response(request: Request, result: AuthResult, status_code: int = 200) -> JSONResponse:
    """Build the envelope for a flow that may have started a session.

    With a token: {"status", "token", "data": {"user"}} plus the cookie.
    Without: {"status", "data": {"message", "user"}}.
    """
    data: dict = {"user": UserOut.from_user(result.user).model_dump()}
    if result.message:
        data["message"] = result.message
    resp = JSONResponse(status_code=status_code, content=success(data, token=result.token))
    if result.token:
        settings = request.app.state.settings
        set_auth_cookie(
            resp,
            result.token,
            secure=request.url.scheme == "https" or settings.secure_cookies,
            expire_days=settings.cookie_expire_days,
        )
        resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)
@router.post("/users/signup", status_code=201)
def sign_up(
    request: Request,
    body: SignUpRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account. Confirmation mail or immediate session, per settings."""
    result = auth.sign_up(body.model_dump(exclude_none=True), _base_url(request))
    return _session_response(request, result, status_code=201)


@limiter.limit(auth_rate_limit)
@router.post("/users/login")
def login(
    request: Request,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with e-mail and password; set the jwt cookie.

    Wrong e-mail and wrong password return the same 401 message.
    """
    result = auth.login(body.email, body.password)
    return _session_response(request, result)


@router.get("/users/logout")
def logout() -> JSONResponse:
    """Clear the jwt cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content=success({"message": "Logged out."}))
    clear_auth_cookie(resp)
    return resp


@router.get("/users/confirm/{token}", status_code=201)
def confirm_mail(
    request: Request,
    token: str,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    result = auth.confirm_mail(token)
    return _session_response(request, result, status_code=201)


@limiter.limit(auth_rate_limit)
@router.post("/users/confirm/resend")
def resend_confirmation_mail(
    request: Request,
    body: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    message = auth.resend_confirmation_mail(body.email, _base_url(request))
    return success({"message": message})


@limiter.limit(auth_rate_limit)
@router.post("/users/forgot-password")
def forgot_password(
    request: Request,
    body: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
) -> dict:
    """Mail a reset link valid for RESET_TOKEN_TTL_SECONDS (10 minutes by default)."""
    message = auth.forgot_password(body.email, _base_url(request))
    return success({"message": message})


@router.patch("/users/reset-password/{token}")
def reset_password(
    request: Request,
    token: str,
    body: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    result = auth.reset_password(token, body.password, body.password_confirmation)
    return _session_response(request, result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.patch("/users/update-password")
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Change the password; every token issued before now stops working."""
    result = auth.update_password(
        current_user,
        body.current_password,
        body.new_password,
        body.new_password_confirmation,
    )
    return _session_response(request, result)


@router.get("/users/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    return success({"user": UserOut.from_user(current_user).model_dump()})


@router.delete("/users/me", status_code=204)
def delete_me(
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> Response:
    """Soft-delete the caller's account and clear the session cookie."""
    auth.deactivate(current_user)
    resp = Response(status_code=204)
    clear_auth_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@router.get("/users", dependencies=[Depends(restrict_to("admin"))])
def list_users(auth: AuthService = Depends(get_auth_service)) -> dict:
    users = [UserOut.from_user(u).model_dump() for u in auth.users.list_users()]
    return success({"users": users}, results=len(users))
