"""Races that only a real PostgreSQL server can interleave.

Set TEST_POSTGRES_URL (postgresql+asyncpg://...) to run them; the in-memory
SQLite used elsewhere shares one connection and serializes everything.
"""

import asyncio
import os
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from apps.engine.credits import CreditLedger
from apps.engine.likes import LikeMatchStateMachine
from core.config import MatchPolicy
from core.db import Base, transaction
from core.errors import InsufficientCreditsError, QuotaExceededError
from helpers import create_user
from models import CreditTransaction, Like, Match, User

POSTGRES_URL = os.environ.get("TEST_POSTGRES_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not POSTGRES_URL, reason="TEST_POSTGRES_URL is not set"),
]


@pytest_asyncio.fixture
async def sessions() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    pg_engine = create_async_engine(POSTGRES_URL, pool_size=10)
    async with pg_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(pg_engine, expire_on_commit=False)
    async with pg_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await pg_engine.dispose()


async def _users(sessions, *specs: dict) -> list[int]:
    async with sessions() as db:
        users = [await create_user(db, **spec) for spec in specs]
        await db.commit()
        return [u.id for u in users]


async def _count(sessions, stmt) -> int:
    async with sessions() as db:
        return (await db.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_simultaneous_reciprocal_likes_create_exactly_one_match(sessions):
    policy = MatchPolicy()

    for _ in range(5):
        woman, man = await _users(sessions, {}, {"gender": "male", "interested_in": "female"})

        async def like(liker: int, target: int) -> bool:
            async with sessions() as db:
                outcome = await LikeMatchStateMachine(db, policy).like(liker, target)
                return outcome.is_match

        results = await asyncio.gather(like(woman, man), like(man, woman))

        assert sorted(results) == [False, True]
        lo, hi = sorted((woman, man))
        matches = select(func.count(Match.id)).where(Match.user1_id == lo, Match.user2_id == hi)
        assert await _count(sessions, matches) == 1
        likes = select(func.count(Like.id)).where(Like.liker_id.in_([woman, man]))
        assert await _count(sessions, likes) == 2


@pytest.mark.asyncio
async def test_parallel_debits_never_overdraw(sessions):
    [user_id] = await _users(sessions, {"credit_balance": 10})

    async def debit() -> bool:
        async with sessions() as db:
            try:
                async with transaction(db):
                    await CreditLedger(db).consume(user_id, 3, "superlike")
                return True
            except InsufficientCreditsError:
                return False

    results = await asyncio.gather(*(debit() for _ in range(6)))

    assert results.count(True) == 3
    assert await _count(sessions, select(User.credit_balance).where(User.id == user_id)) == 1
    debits = select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user_id)
    assert await _count(sessions, debits) == 3


@pytest.mark.asyncio
async def test_parallel_likes_respect_the_quota(sessions):
    policy = MatchPolicy()
    man, *women = await _users(sessions, {"gender": "male", "interested_in": "female"}, {}, {}, {})

    async def like(target: int) -> bool:
        async with sessions() as db:
            try:
                await LikeMatchStateMachine(db, policy).like(man, target)
                return True
            except QuotaExceededError:
                return False

    results = await asyncio.gather(*(like(w) for w in women))

    assert results.count(True) == policy.male.on_grid_likes
    assert await _count(sessions, select(func.count(Like.id)).where(Like.liker_id == man)) == 1
