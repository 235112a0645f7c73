"""Unit tests for core/config.py -- SECRET_KEY policy and backend validation."""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_debug_generates_secret_key() -> None:
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_secret_key_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(debug=True, secret_key="too-short")


def test_unknown_mail_backend_rejected() -> None:
    with pytest.raises(ValidationError, match="MAIL_BACKEND"):
        Settings(debug=True, mail_backend="carrier-pigeon")


def test_production_safe_defaults() -> None:
    settings = Settings(debug=True)
    assert settings.require_email_confirmation is True
    assert settings.allow_privileged_signup is False
    assert settings.reset_token_ttl_seconds == 600
    assert settings.token_expire_seconds == 90 * 24 * 3600


def test_env_vars_are_read(monkeypatch) -> None:
    monkeypatch.setenv("REQUIRE_EMAIL_CONFIRMATION", "false")
    monkeypatch.setenv("PASSWORD_MIN_LENGTH", "12")
    settings = Settings(debug=True)
    assert settings.require_email_confirmation is False
    assert settings.password_min_length == 12
