"""
auth/tokens.py -- Session JWTs, password hashing, and reset-token utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the user id ("id"), the issue time
       ("iat", plus "iat_ms" in milliseconds) and the expiry ("exp"). The
       millisecond claim is what password-change invalidation compares
       against. TokenService.verify() raises InvalidToken on any failure --
       the dependency layer turns that into a 401.

  Passwords: bcrypt directly (no passlib wrapper), cost factor from
       Settings.bcrypt_rounds (12 by default). _DUMMY_HASH lets the login flow
       run bcrypt even for unknown e-mails so response time does not reveal
       whether an account exists.

  Reset tokens: secrets.token_hex(32) gives 256 bits of entropy, so a fast
       sha256 digest is enough for the stored value. The digest is only an
       index for the "hash + not expired" lookup.

Layer rule: no imports from api/, placement/, or mail/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import ResetToken, TokenClaims
from core.errors import AuthError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("placement.auth")

_ALGORITHM = "HS256"
COOKIE_NAME = "jwt"


class InvalidToken(AuthError):
    """Signature mismatch, expiry, or malformed claims."""


# ---------------------------------------------------------------------------
# Password hashing (bcrypt)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt silently truncates input beyond 72 bytes; the API layer caps
    password length well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the DB -- treat as a mismatch.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("placement_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a full bcrypt comparison against the dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Reset tokens
# ---------------------------------------------------------------------------


def hash_reset_token(plain: str) -> str:
    """Return the sha256 hex digest stored for a reset token."""
    return hashlib.sha256(plain.encode("utf-8")).hexdigest()


def make_reset_token(ttl_seconds: int = 600) -> ResetToken:
    """Generate a reset token: the value to mail, its stored hash, and the expiry."""
    plain = secrets.token_hex(32)
    return ResetToken(
        plain=plain,
        hashed=hash_reset_token(plain),
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds),
    )


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed session tokens.

    Usage:
        tokens = TokenService(settings)
        token = tokens.issue(user.id)
        claims = tokens.verify(token)   # raises InvalidToken
    """

    def __init__(self, settings: Settings) -> None:
        self._secret_key = settings.secret_key
        self._expire_seconds = settings.token_expire_seconds

    @property
    def expire_seconds(self) -> int:
        return self._expire_seconds

    def issue(self, user_id: int, issued_at: datetime | None = None) -> str:
        """Encode a signed JWT embedding the user id and the issue time.

        issued_at defaults to now; expiry is counted from it.
        """
        now = issued_at or datetime.now(timezone.utc)
        payload = {
            "id": user_id,
            "iat": int(now.timestamp()),
            "iat_ms": int(now.timestamp() * 1000),
            "exp": now + timedelta(seconds=self._expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT. Raises InvalidToken on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidToken("Invalid or expired token. Please log in again.") from exc
        user_id = payload.get("id")
        issued_at = payload.get("iat_ms")
        if not isinstance(user_id, int) or not isinstance(issued_at, int):
            raise InvalidToken("Invalid or expired token. Please log in again.")
        return TokenClaims(user_id=user_id, issued_at=issued_at)


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, *, secure: bool, expire_days: int) -> None:
    """Write the session token as an httpOnly "jwt" cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POSTs.
    secure: set when the request arrived over HTTPS (or SECURE_COOKIES=true).
    max_age: expire_days worth of seconds.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=expire_days * 24 * 3600,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(COOKIE_NAME)
