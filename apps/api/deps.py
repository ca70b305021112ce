"""FastAPI dependencies."""

from collections.abc import AsyncGenerator

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from apps.persona.provider import PersonaEnricher
from apps.persona.provider import get_enricher as _get_enricher
from apps.workers.notifier import Notifier
from apps.workers.notifier import get_notifier as _get_notifier
from core.config import MatchPolicy, policy
from core.db import get_db as _get_db
from core.redis import get_redis as _get_redis


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async for session in _get_db():
        yield session


async def get_redis_client() -> redis.Redis:
    """Get Redis client dependency."""
    return await _get_redis()


def get_policy() -> MatchPolicy:
    """Matching policy; overridden in tests."""
    return policy


def get_enricher() -> PersonaEnricher:
    return _get_enricher()


def get_notifier() -> Notifier:
    return _get_notifier()
