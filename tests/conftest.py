"""
tests/conftest.py -- Shared test fixtures for Bonus Auth.

This module provides:
  - InMemoryDirectory: a UserDirectory fake for unit-testing ReferralService
    without a database
  - RecordingNotifier: captures verification / reset links instead of mailing
  - _patch_lifespan(): wires test collaborators into app.state
  - api_client: module-scoped TestClient over an isolated shared-memory DB
  - api: per-test view of api_client with the cookie jar cleared

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment must be set before any auth/core import: DEBUG lets get_settings()
auto-generate SECRET_KEY, and non-secure lax cookies let the TestClient
cookie jar (plain http://testserver) store and resend the auth cookie.
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECURE_COOKIES", "false")
os.environ.setdefault("COOKIE_SAMESITE", "lax")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.accounts import AccountService
from auth.models import User
from auth.store import UserStore
from referral.service import ReferralService

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _as_datetime(value) -> datetime:
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class InMemoryDirectory:
    """Dict-backed UserDirectory. Records lookups so tests can assert on cost."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.id_lookups = 0
        self._ids = itertools.count(1)

    def add(
        self,
        referrer_id: int | None = None,
        ban: bool = False,
        is_active: bool = True,
        created_at: datetime | None = None,
    ) -> User:
        user_id = next(self._ids)
        user = User(
            id=user_id,
            name=f"user{user_id}",
            email=f"user{user_id}@example.com",
            key=f"key-{user_id}",
            referrer_id=referrer_id,
            ban=ban,
            is_active=is_active,
            created_at=(created_at or datetime.now(timezone.utc)).isoformat(),
        )
        self.users[user_id] = user
        return user

    def find_by_key(self, key: str) -> User | None:
        return next((u for u in self.users.values() if u.key == key), None)

    def find_by_id(self, user_id: int) -> User | None:
        self.id_lookups += 1
        return self.users.get(user_id)

    def find_referrals(self, referrer_id: int) -> list[User]:
        return [u for u in self.users.values() if u.referrer_id == referrer_id]

    def count_referrals_since(self, referrer_id: int, cutoff: datetime) -> int:
        return sum(1 for u in self.find_referrals(referrer_id) if _as_datetime(u.created_at) >= cutoff)

    def create_user(self, user: User) -> int:
        created = self.add(referrer_id=user.referrer_id, ban=user.ban, is_active=user.is_active)
        return created.id


@dataclass
class RecordingNotifier:
    """Notifier that keeps every link it was asked to send."""

    verifications: list[tuple[str, str]] = field(default_factory=list)
    resets: list[tuple[str, str]] = field(default_factory=list)
    fail: bool = False

    def send_verification(self, email: str, name: str, link: str) -> None:
        if self.fail:
            raise ConnectionError("mail provider unreachable")
        self.verifications.append((email, link))

    def send_password_reset(self, email: str, link: str) -> None:
        if self.fail:
            raise ConnectionError("mail provider unreachable")
        self.resets.append((email, link))

    def last_link_for(self, email: str, kind: str = "verifications") -> str:
        return [link for addr, link in getattr(self, kind) if addr == email][-1]


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    notifier: RecordingNotifier

    _emails = itertools.count(1)

    def unique_email(self, prefix: str = "user") -> str:
        return f"{prefix}{next(self._emails)}@example.com"

    def register(self, email: str | None = None, password: str = "password123", **extra) -> dict:
        """Register through the API and return the response JSON (asserting 201)."""
        body = {
            "name": "Test User",
            "email": email or self.unique_email(),
            "password": password,
            "password_confirmation": password,
            **extra,
        }
        resp = self.client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 201, resp.text
        self.client.cookies.clear()
        return resp.json()


def _patch_lifespan(user_store: UserStore, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine (a real asyncio.Task is
    required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.referrals = ReferralService(user_store)
        app.state.notifier = notifier
        app.state.accounts = AccountService(user_store, app.state.referrals, notifier)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext over an isolated DB named after the test module."""
    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    notifier = RecordingNotifier()

    app.router.lifespan_context = _patch_lifespan(user_store, notifier)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=user_store, notifier=notifier)

    limiter.enabled = True
    user_store.close()


@pytest.fixture
def api(api_client: ApiContext) -> ApiContext:
    """api_client with an empty cookie jar, so no test inherits another's session."""
    api_client.client.cookies.clear()
    api_client.notifier.fail = False
    return api_client
