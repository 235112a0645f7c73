"""
tests/conftest.py -- Shared fixtures for the placement backend tests.

This module provides:
  - make_settings(): Settings with a fixed key and cheap bcrypt rounds
  - RecordingMailer: Mailer that keeps sent messages in memory (and can fail)
  - store / service fixtures for unit tests (user_store, placement_store,
    auth_service, applied_service, completed_service)
  - api / api_factory: TestClient on the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
fixture gets its own name so tests never see each other's rows.

The DEBUG env var must be set before any core/auth import so get_settings()
(called when api.main is imported) auto-generates SECRET_KEY instead of
raising ValueError.
"""

from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Generator
from contextlib import ExitStack, asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings
from mail.sender import MailDeliveryError, Mailer
from placement.service import AppliedService, CompletedService
from placement.store import PlacementStore

# Rate limits are covered by slowapi itself; keep them out of functional tests.
limiter.enabled = False

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"
PASSWORD = "password123"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": TEST_SECRET, "bcrypt_rounds": 4}
    values.update(overrides)
    return Settings(**values)


def memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@dataclass
class SentMail:
    to: str
    subject: str
    body: str

    def url(self) -> str:
        """The first http(s) URL in the body."""
        match = re.search(r"https?://\S+", self.body)
        assert match, f"no URL in mail body: {self.body!r}"
        return match.group(0)

    def token(self) -> str:
        """Last path segment of the mailed URL."""
        return self.url().rstrip("/").rsplit("/", 1)[-1]


class RecordingMailer(Mailer):
    """Keeps messages in .sent. Set .fail = True to simulate a transport outage."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.sent: list[SentMail] = []
        self.fail = False

    def deliver(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailDeliveryError("simulated outage")
        self.sent.append(SentMail(to=to, subject=subject, body=body))


def add_user(
    store: UserStore,
    name: str = "Ada Lovelace",
    email: str = "ada@example.com",
    *,
    role: str = "user",
    password: str = PASSWORD,
    confirmed: bool = True,
) -> User:
    uid = store.create_user(User(name=name, email=email, role=role, confirmed=confirmed), password)
    return store.get_by_id(uid)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(memory_url("test_auth"), bcrypt_rounds=4)
    yield store
    store.close()


@pytest.fixture
def placement_store() -> Generator[PlacementStore, None, None]:
    store = PlacementStore(memory_url("test_placement"))
    yield store
    store.close()


@pytest.fixture
def mailer(settings: Settings) -> RecordingMailer:
    return RecordingMailer(settings)


@pytest.fixture
def tokens(settings: Settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def auth_service(user_store, tokens, mailer, settings) -> AuthService:
    return AuthService(user_store, tokens, mailer, settings)


@pytest.fixture
def applied_service(placement_store, user_store) -> AppliedService:
    return AppliedService(placement_store, user_store)


@pytest.fixture
def completed_service(placement_store, user_store) -> CompletedService:
    return CompletedService(placement_store, user_store)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    """Everything a route test needs: the client plus direct store access."""

    client: TestClient
    settings: Settings
    user_store: UserStore
    placement_store: PlacementStore
    mailer: RecordingMailer
    tokens: TokenService = field(init=False)

    def __post_init__(self) -> None:
        self.tokens = TokenService(self.settings)

    def headers(self, user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens.issue(user.id)}"}


def _patch_lifespan(settings, user_store, placement_store, mailer):
    """Return a lifespan that wires the test stores into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, settings, user_store, placement_store, mailer)
        yield

    return test_lifespan


@pytest.fixture
def api_factory() -> Generator[Callable[..., ApiContext], None, None]:
    """Build an ApiContext with Settings overrides, e.g. api_factory(require_email_confirmation=False)."""
    with ExitStack() as stack:

        def build(**overrides) -> ApiContext:
            settings = make_settings(**overrides)
            user_store = UserStore(memory_url("test_api_auth"), bcrypt_rounds=4)
            placement_store = PlacementStore(memory_url("test_api_placement"))
            stack.callback(user_store.close)
            stack.callback(placement_store.close)
            mailer = RecordingMailer(settings)
            app.router.lifespan_context = _patch_lifespan(settings, user_store, placement_store, mailer)
            client = stack.enter_context(TestClient(app, raise_server_exceptions=True))
            return ApiContext(
                client=client,
                settings=settings,
                user_store=user_store,
                placement_store=placement_store,
                mailer=mailer,
            )

        yield build


@pytest.fixture
def api(api_factory) -> ApiContext:
    """Default API context: e-mail confirmation required, privileged signup off."""
    return api_factory()
