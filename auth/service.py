"""
auth/service.py -- Account lifecycle: signup, confirmation, login, password flows.

AuthService orchestrates UserStore, TokenService and the Mailer. It raises
core.errors.AppError subclasses; the HTTP layer maps them to status codes.

Account states:
  Unconfirmed -> Confirmed            (confirm_mail, or auto on dev signup)
  PasswordValid -> ResetPending       (forgot_password)
  ResetPending -> PasswordValid       (reset_password, or the token expiring)

Session invalidation is stateless: authenticate() rejects any token whose
millisecond issue time ("iat_ms") is earlier than the user's
password_changed_at. No revocation list. Unconfirmed accounts cannot
authenticate either, even with the token carried by their confirmation link.

forgot_password() is the one compensating sequence: persist reset token ->
send mail -> on delivery failure clear the token fields -> raise ServerError.

Layer rule: no imports from api/ or placement/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from auth import policy
from auth.models import ROLES, User
from auth.store import UserStore
from auth.tokens import (
    InvalidToken,
    TokenService,
    burn_password_check,
    hash_reset_token,
    make_reset_token,
    verify_password,
)
from core.config import Settings
from core.errors import AuthError, NotFound, ServerError, ValidationError
from mail.sender import MailDeliveryError, Mailer

logger = logging.getLogger("placement.auth")

_SIGNUP_FIELDS = ("name", "email", "photo", "password", "password_confirmation")
# Only honoured when Settings.allow_privileged_signup is true.
_PRIVILEGED_SIGNUP_FIELDS = ("role", "confirmed")

CONFIRM_PATH = "/api/v1/users/confirm"
RESET_PATH = "/api/v1/users/reset-password"

_BAD_CREDENTIALS = "Incorrect email or password."
_BAD_RESET_TOKEN = "Token is invalid or expired."


@dataclass
class AuthResult:
    """Outcome of an auth flow. token is None when no session was started."""

    user: User
    token: str | None = None
    message: str | None = None


def password_changed_after(user: User, issued_at_ms: int) -> bool:
    """True if the user's password changed after a token issued at issued_at_ms.

    Both sides are compared in whole milliseconds.
    """
    if user.password_changed_at is None:
        return False
    return int(user.password_changed_at.timestamp() * 1000) > issued_at_ms


class AuthService:
    def __init__(self, user_store: UserStore, tokens: TokenService, mailer: Mailer, settings: Settings) -> None:
        self.users = user_store
        self.tokens = tokens
        self.mailer = mailer
        self.settings = settings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_new_password(self, password: str | None, confirmation: str | None) -> None:
        if not password or not confirmation:
            raise ValidationError("Please provide a password and its confirmation.")
        if len(password) < self.settings.password_min_length:
            raise ValidationError(f"Password must be at least {self.settings.password_min_length} characters long.")
        if password != confirmation:
            raise ValidationError("Password and Password Confirmation does not match.")

    def _issue(self, user: User, message: str | None = None) -> AuthResult:
        return AuthResult(user=user, token=self.tokens.issue(user.id), message=message)

    def _send_confirmation(self, user: User, base_url: str) -> None:
        token = self.tokens.issue(user.id)
        url = f"{base_url.rstrip('/')}{CONFIRM_PATH}/{token}"
        try:
            self.mailer.send_confirmation_mail(user, url)
        except MailDeliveryError as exc:
            logger.warning("Confirmation mail to user %s failed", user.id)
            raise ServerError("There was a problem sending the confirmation e-mail. Please try again later.") from exc

    # ------------------------------------------------------------------
    # Signup and confirmation
    # ------------------------------------------------------------------

    def sign_up(self, payload: dict, base_url: str) -> AuthResult:
        """Create an account from an allow-listed subset of payload.

        With require_email_confirmation the confirmation mail is sent and no
        session starts; otherwise the account is confirmed on the spot and a
        token is issued.
        """
        allowed = _SIGNUP_FIELDS
        if self.settings.allow_privileged_signup:
            allowed = allowed + _PRIVILEGED_SIGNUP_FIELDS
        data = {k: payload[k] for k in allowed if payload.get(k) is not None}

        if not data.get("name"):
            raise ValidationError("A user must have a name.")
        if not data.get("email"):
            raise ValidationError("A user must have an email.")
        try:
            email = validate_email(data["email"], check_deliverability=False).normalized
        except EmailNotValidError as exc:
            raise ValidationError("Provided email is not a valid email.") from exc
        self._check_new_password(data.get("password"), data.get("password_confirmation"))
        role = data.get("role", "user")
        if role not in ROLES:
            raise ValidationError("Role should be either admin, rep or user.")
        if self.users.get_by_email(email, include_inactive=True) is not None:
            raise ValidationError("An account with this email already exists.")

        confirmed = bool(data.get("confirmed", False)) or not self.settings.require_email_confirmation
        user = User(
            name=data["name"],
            email=email,
            photo=data.get("photo") or "default.jpg",
            role=role,
            confirmed=confirmed,
        )
        try:
            user.id = self.users.create_user(user, password=data["password"])
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same address.
            raise ValidationError("An account with this email already exists.") from exc
        created = self.users.get_by_id(user.id)
        logger.info("User %s signed up (confirmed=%s)", created.id, created.confirmed)

        if self.settings.require_email_confirmation and not created.confirmed:
            self._send_confirmation(created, base_url)
            return AuthResult(
                user=created,
                message="Please confirm your email to continue. A link has been sent to your email address.",
            )
        return self._issue(created)

    def confirm_mail(self, token: str) -> AuthResult:
        """Mark the token's user as confirmed and start a session."""
        if not token:
            raise ValidationError("There's something wrong with the URL.")
        try:
            claims = self.tokens.verify(token)
        except InvalidToken as exc:
            raise ValidationError("Invalid token or the token has been modified.") from exc
        user = self.users.get_by_id(claims.user_id)
        if user is None:
            raise ValidationError("Invalid token or the token has been modified.")
        self.users.update_user(user.id, confirmed=True)
        user.confirmed = True
        logger.info("User %s confirmed their email", user.id)
        return self._issue(user)

    def resend_confirmation_mail(self, email: str | None, base_url: str) -> str:
        if not email:
            raise ValidationError("You must provide your email to get the confirmation link.")
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFound("No user found for the given email address. Try signing up.")
        self._send_confirmation(user, base_url)
        return "A confirmation link has been sent to your email address."

    # ------------------------------------------------------------------
    # Login and request authentication
    # ------------------------------------------------------------------

    def login(self, email: str | None, password: str | None) -> AuthResult:
        """Check credentials and start a session.

        Unknown e-mail and wrong password produce the same AuthError. bcrypt
        runs against a dummy hash when the account does not exist so both
        cases cost the same time.
        """
        if not email or not password:
            raise ValidationError("Please provide email and password to login.")
        user = self.users.get_by_email(email, with_password=True)
        if user is None:
            burn_password_check(password)
            logger.info("Failed login for unknown email")
            raise AuthError(_BAD_CREDENTIALS)
        if not verify_password(password, user.hashed_password):
            logger.info("Failed login for user %s", user.id)
            raise AuthError(_BAD_CREDENTIALS)
        if not user.confirmed:
            raise AuthError("Please confirm your mail first to login.")
        user.hashed_password = None
        return self._issue(user)

    def authenticate(self, token: str | None) -> User:
        """Resolve a session token to its active, confirmed user or raise AuthError.

        The confirmation link carries a session token too; until the link is
        followed that token is refused here like any other.
        """
        if not token:
            raise AuthError("You're not logged in. Please login to get access.")
        claims = self.tokens.verify(token)
        user = self.users.get_by_id(claims.user_id)
        if user is None:
            raise AuthError("The account this token belongs to no longer exists.")
        if not user.confirmed:
            raise AuthError("Please confirm your mail first to login.")
        if password_changed_after(user, claims.issued_at):
            raise AuthError("Your account password has been changed. Please login again to continue.")
        return user

    @staticmethod
    def restrict_to(user: User, *roles: str) -> User:
        """Return user unchanged if its role is one of roles, else raise AuthzError."""
        policy.ensure_role(user, *roles)
        return user

    # ------------------------------------------------------------------
    # Password flows
    # ------------------------------------------------------------------

    def forgot_password(self, email: str | None, base_url: str) -> str:
        """Persist a reset token and mail its link; roll back if the mail fails."""
        if not email:
            raise ValidationError("Please provide your email address to reset your password.")
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFound("No user exists with that email address.")

        reset = make_reset_token(self.settings.reset_token_ttl_seconds)
        self.users.update_user(
            user.id,
            password_reset_token=reset.hashed,
            password_reset_expires=reset.expires_at,
        )
        url = f"{base_url.rstrip('/')}{RESET_PATH}/{reset.plain}"
        try:
            self.mailer.send_reset_password(user, url)
        except MailDeliveryError as exc:
            self.users.update_user(user.id, password_reset_token=None, password_reset_expires=None)
            logger.warning("Reset mail to user %s failed; reset token cleared", user.id)
            raise ServerError("There was a problem sending the email. Please try again later.") from exc
        logger.info("Password reset requested for user %s", user.id)
        return "A link to reset your password was sent to your email address."

    def reset_password(self, raw_token: str, password: str | None, confirmation: str | None) -> AuthResult:
        """Set a new password using a mailed reset token.

        Unknown and expired tokens fail with the same message.
        """
        user = self.users.get_by_reset_token(hash_reset_token(raw_token or ""))
        if user is None:
            raise ValidationError(_BAD_RESET_TOKEN)
        self._check_new_password(password, confirmation)
        self.users.update_user(
            user.id,
            password=password,
            password_reset_token=None,
            password_reset_expires=None,
        )
        logger.info("Password reset completed for user %s", user.id)
        return self._issue(self.users.get_by_id(user.id))

    def update_password(
        self,
        current_user: User,
        current_password: str | None,
        new_password: str | None,
        confirmation: str | None,
    ) -> AuthResult:
        """Change the password of a logged-in user after re-checking the current one."""
        user = self.users.get_by_id(current_user.id, with_password=True)
        if user is None or not current_password or not verify_password(current_password, user.hashed_password):
            raise AuthError(
                "Given password doesn't match the current password. "
                "If you've forgotten the password use the forgot password URL."
            )
        self._check_new_password(new_password, confirmation)
        self.users.update_user(user.id, password=new_password)
        logger.info("Password updated for user %s", user.id)
        return self._issue(self.users.get_by_id(user.id))

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def deactivate(self, current_user: User) -> None:
        """Soft-delete the caller's account."""
        self.users.update_user(current_user.id, is_active=False)
        logger.info("User %s deactivated their account", current_user.id)
