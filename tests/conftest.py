"""
tests/conftest.py -- Shared test fixtures for CodeGate.

This module provides:
  - FakeMailTransport: records outgoing mail and can refuse delivery
  - FakeClock: controllable "now" for code-expiry scenarios
  - engine: CredentialEngine over an in-memory UserStore
  - api_client: TestClient with a patched lifespan and isolated stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API fixtures because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Each api_client gets its own DB name, so tests never share
accounts.

TOKEN_SECRET and CODE_SECRET must be set before api.main is imported:
Settings refuses to load without them.
"""

from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: set secrets before any api/ import so get_settings() succeeds.
os.environ.setdefault("TOKEN_SECRET", "test-token-secret-0123456789abcdef0123456789")
os.environ.setdefault("CODE_SECRET", "test-code-secret-0123456789abcdef01234567890")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.codes import OneTimeCodes
from auth.engine import CredentialEngine
from auth.mail import DeliveryReceipt
from auth.store import UserStore
from auth.tokens import SessionTokens
from categories.store import CategoryStore
from core.config import Settings

_CODE_RE = re.compile(r"<strong>(\d{6})</strong>")

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


@dataclass
class SentMail:
    to: str
    subject: str
    html: str

    @property
    def code(self) -> str:
        match = _CODE_RE.search(self.html)
        assert match, "mail body does not contain a code"
        return match.group(1)


class FakeMailTransport:
    """MailTransport double. accept=False simulates a refused delivery.

    on_send, when set, runs inside send() before the receipt is returned --
    used to interleave a second request into the middle of the first.
    """

    def __init__(self) -> None:
        self.sent: list[SentMail] = []
        self.accept = True
        self.on_send: Callable[[], None] | None = None

    def send(self, to: str, subject: str, html_body: str) -> DeliveryReceipt:
        self.sent.append(SentMail(to, subject, html_body))
        hook, self.on_send = self.on_send, None
        if hook is not None:
            hook()
        if not self.accept:
            return DeliveryReceipt()
        return DeliveryReceipt(accepted=[to], message_id=uuid.uuid4().hex)

    def last_code_for(self, email: str) -> str:
        for mail in reversed(self.sent):
            if mail.to == email:
                return mail.code
        raise AssertionError(f"no mail sent to {email}")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        token_secret="unit-token-secret-0123456789abcdef0123456789",
        code_secret="unit-code-secret-0123456789abcdef01234567890",
        environment="development",
    )


@pytest.fixture
def mail() -> FakeMailTransport:
    return FakeMailTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def engine(settings: Settings, user_store: UserStore, mail: FakeMailTransport, clock: FakeClock) -> CredentialEngine:
    return CredentialEngine(
        store=user_store,
        tokens=SessionTokens(settings),
        codes=OneTimeCodes(settings),
        mail=mail,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, categories: CategoryStore, mail: FakeMailTransport):
    """Return a lifespan that wires test stores and the fake transport into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        settings = Settings()
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.categories = categories
        app.state.engine = CredentialEngine(
            store=user_store,
            tokens=SessionTokens(settings),
            codes=OneTimeCodes(settings),
            mail=mail,
        )
        yield

    return test_lifespan


@pytest.fixture
def api_client(mail: FakeMailTransport) -> Generator[tuple[TestClient, FakeMailTransport], None, None]:
    """Yield (client, mail) backed by fresh shared-memory databases."""
    suffix = uuid.uuid4().hex
    user_store = UserStore(f"sqlite:///file:test_users_{suffix}?mode=memory&cache=shared&uri=true")
    categories = CategoryStore(f"sqlite:///file:test_categories_{suffix}?mode=memory&cache=shared&uri=true")

    app.router.lifespan_context = _patch_lifespan(user_store, categories, mail)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mail

    user_store.close()
    categories.close()


def register(client: TestClient, email: str = "alice@example.com", password: str = "Str0ng!Pass", name: str = "Alice"):
    """POST /register and return the response. The client keeps the session cookie."""
    return client.post("/api/v1/users/register", json={"name": name, "email": email, "password": password})
