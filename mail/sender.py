"""
mail/sender.py -- Outbound e-mail for account confirmation and password reset.

AuthService only depends on the Mailer interface:

    send_confirmation_mail(user, url)
    send_reset_password(user, url)

Both block until the message is handed off and raise MailDeliveryError on
failure. No retries here -- forgot-password rolls its token back instead.

Backends (Settings.mail_backend):
  "log" -- LogMailer writes the rendered message to the log. Local dev and CI.
  "ses" -- SESMailer sends through AWS SES with boto3. Credentials come from
           the usual boto3 chain (env vars, instance profile, ...).

Bodies are plain-text Jinja2 templates in mail/templates/.

Layer rule: no imports from api/ or placement/.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from jinja2 import Environment, FileSystemLoader, StrictUndefined

from auth.models import User
from core.config import Settings

logger = logging.getLogger("placement.mail")

_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)

_SUBJECTS: dict[str, str] = {
    "confirmation": "Confirm your e-mail address",
    "reset_password": "Your password reset link",
}


class MailDeliveryError(Exception):
    """The message could not be handed to the mail transport."""


def render(template: str, user: User, url: str, **extra) -> str:
    first_name = user.name.split(" ")[0] if user.name else ""
    return _templates.get_template(f"{template}.txt").render(first_name=first_name, url=url, **extra)


class Mailer(ABC):
    """Base mailer. Subclasses implement deliver()."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    def deliver(self, to: str, subject: str, body: str) -> None:
        """Hand one plain-text message to the transport or raise MailDeliveryError."""

    def send_confirmation_mail(self, user: User, url: str) -> None:
        valid_days = max(1, self.settings.token_expire_seconds // 86400)
        body = render("confirmation", user, url, valid_days=valid_days)
        self.deliver(user.email, _SUBJECTS["confirmation"], body)

    def send_reset_password(self, user: User, url: str) -> None:
        valid_minutes = max(1, self.settings.reset_token_ttl_seconds // 60)
        body = render("reset_password", user, url, valid_minutes=valid_minutes)
        self.deliver(user.email, _SUBJECTS["reset_password"], body)


class LogMailer(Mailer):
    """Writes messages to the log instead of sending them."""

    def deliver(self, to: str, subject: str, body: str) -> None:
        logger.info("Mail to %s: %s\n%s", to, subject, body)


class SESMailer(Mailer):
    """Send e-mail via AWS SES."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._client = None

    @property
    def client(self):
        """Lazy-load the SES client so importing this module needs no AWS config."""
        if self._client is None:
            self._client = boto3.client("ses", region_name=self.settings.aws_region)
        return self._client

    def deliver(self, to: str, subject: str, body: str) -> None:
        try:
            response = self.client.send_email(
                Source=self.settings.mail_from,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                },
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("SES delivery to %s failed: %s", to, exc)
            raise MailDeliveryError(str(exc)) from exc
        logger.info("Mail sent to %s: %s (MessageId: %s)", to, subject, response.get("MessageId"))


def build_mailer(settings: Settings) -> Mailer:
    if settings.mail_backend == "ses":
        return SESMailer(settings)
    return LogMailer(settings)
