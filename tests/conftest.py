from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PUSH_ENABLED"] = "false"
os.environ["REALTIME_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["SECRET_KEY"] = "test-secret"

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import models  # noqa: F401
from apps.api.deps import get_enricher, get_notifier, get_policy
from apps.api.main import app
from core.config import MatchPolicy
from core.db import Base, engine
from helpers import FakeEnricher, RecordingNotifier


@pytest_asyncio.fixture(autouse=True)
async def _schema() -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # The pooled aiosqlite connection is bound to this test's event loop
    await engine.dispose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def enricher() -> FakeEnricher:
    return FakeEnricher()


@pytest.fixture
def policy() -> MatchPolicy:
    return MatchPolicy()


@pytest_asyncio.fixture
async def client(
    notifier: RecordingNotifier, enricher: FakeEnricher, policy: MatchPolicy
) -> AsyncIterator[AsyncClient]:
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_enricher] = lambda: enricher
    app.dependency_overrides[get_policy] = lambda: policy
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as api_client:
        yield api_client
    app.dependency_overrides.clear()
