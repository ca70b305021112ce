from collections.abc import AsyncIterator
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.engine.limits import ActivityLimitTracker
from core.clock import utcnow
from core.config import MatchPolicy
from core.db import AsyncSessionLocal
from core.errors import QuotaExceededError
from helpers import create_user
from models import ActivityLimits


@pytest_asyncio.fixture
async def db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def tracker(db, policy) -> ActivityLimitTracker:
    return ActivityLimitTracker(db, policy)


@pytest.mark.asyncio
async def test_missing_row_is_created_with_zero_counts(db, tracker):
    user = await create_user(db)
    limits = await tracker.check_and_reset(user.id)

    assert (limits.on_grid_likes_count, limits.off_grid_likes_count, limits.messages_started_count) == (0, 0, 0)
    rows = (await db.execute(select(ActivityLimits).where(ActivityLimits.user_id == user.id))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_counts_survive_inside_window(db, tracker):
    user = await create_user(db)
    now = utcnow()
    limits = await tracker.check_and_reset(user.id, now)
    await tracker.increment(limits, "on_grid")
    await tracker.increment(limits, "messages")

    later = await tracker.check_and_reset(user.id, now + timedelta(hours=11, minutes=59))
    assert later.on_grid_likes_count == 1
    assert later.messages_started_count == 1


@pytest.mark.asyncio
async def test_counts_reset_once_window_elapsed(db, tracker):
    user = await create_user(db)
    now = utcnow()
    limits = await tracker.check_and_reset(user.id, now)
    await tracker.increment(limits, "off_grid")
    await tracker.increment(limits, "off_grid")

    after = now + timedelta(hours=12)
    reset = await tracker.check_and_reset(user.id, after)
    assert reset.off_grid_likes_count == 0
    assert reset.last_reset_at == after

    # A second check in the new window does not reset again
    await tracker.increment(reset, "off_grid")
    again = await tracker.check_and_reset(user.id, after + timedelta(hours=1))
    assert again.off_grid_likes_count == 1


@pytest.mark.asyncio
async def test_peek_is_read_only(db, tracker):
    user = await create_user(db)
    limits = await tracker.peek(user.id)
    assert limits.total_likes == 0
    rows = (await db.execute(select(ActivityLimits).where(ActivityLimits.user_id == user.id))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_quota_is_per_grid_and_gendered(db, tracker):
    man = await create_user(db, gender="male", interested_in="female")
    now = utcnow()
    limits = await tracker.check_and_reset(man.id, now)

    tracker.enforce_like_quota(man, limits, True, now)
    await tracker.increment(limits, "on_grid")

    with pytest.raises(QuotaExceededError) as exc_info:
        tracker.enforce_like_quota(man, limits, True, now)
    assert exc_info.value.kind == "on_grid"
    assert exc_info.value.limit == 1
    assert exc_info.value.extra["reset_in_hours"] == 12

    # Off-grid allowance is independent
    tracker.enforce_like_quota(man, limits, False, now)


@pytest.mark.asyncio
async def test_premium_bypasses_quota(db, tracker):
    man = await create_user(db, gender="male", interested_in="female", is_premium=True)
    limits = await tracker.check_and_reset(man.id)
    for _ in range(3):
        tracker.enforce_like_quota(man, limits, True)
        await tracker.increment(limits, "on_grid")
    assert limits.on_grid_likes_count == 3


@pytest.mark.asyncio
async def test_expired_premium_does_not_bypass(db, tracker):
    man = await create_user(
        db, gender="male", interested_in="female", is_premium=True, premium_expires_at=utcnow() - timedelta(days=1)
    )
    limits = await tracker.check_and_reset(man.id)
    await tracker.increment(limits, "on_grid")
    with pytest.raises(QuotaExceededError):
        tracker.enforce_like_quota(man, limits, True)


@pytest.mark.asyncio
async def test_message_cap_follows_gender_quota(db, tracker):
    man = await create_user(db, gender="male", interested_in="female")
    woman = await create_user(db)
    man_limits = await tracker.check_and_reset(man.id)
    woman_limits = await tracker.check_and_reset(woman.id)
    for _ in range(3):
        await tracker.increment(man_limits, "messages")
        await tracker.increment(woman_limits, "messages")

    with pytest.raises(QuotaExceededError) as exc_info:
        tracker.enforce_message_quota(man, man_limits)
    assert exc_info.value.limit == 3
    tracker.enforce_message_quota(woman, woman_limits)
    assert tracker.messages_remaining(woman, woman_limits) == 7

    for _ in range(7):
        await tracker.increment(woman_limits, "messages")
    with pytest.raises(QuotaExceededError) as exc_info:
        tracker.enforce_message_quota(woman, woman_limits)
    assert exc_info.value.limit == 10
    assert exc_info.value.kind == "messages"


@pytest.mark.asyncio
async def test_cooldown_starts_when_combined_quota_spent(db, tracker):
    woman = await create_user(db, cooldown_enabled=True)
    now = utcnow()
    limits = await tracker.check_and_reset(woman.id, now)
    for _ in range(3):
        await tracker.increment(limits, "on_grid")
    for _ in range(6):
        await tracker.increment(limits, "off_grid")

    assert await tracker.maybe_start_cooldown(woman, limits, now) is None

    await tracker.increment(limits, "off_grid")
    until = await tracker.maybe_start_cooldown(woman, limits, now)
    assert until == now + timedelta(hours=10)
    assert woman.cooldown_until == until


@pytest.mark.asyncio
async def test_cooldown_requires_opt_in(db, tracker):
    woman = await create_user(db, cooldown_enabled=False)
    limits = await tracker.check_and_reset(woman.id)
    for _ in range(10):
        await tracker.increment(limits, "off_grid")
    assert await tracker.maybe_start_cooldown(woman, limits) is None
    assert woman.cooldown_until is None


@pytest.mark.asyncio
async def test_policy_is_injectable(db):
    tight = MatchPolicy(reset_window_hours=1)
    tracker = ActivityLimitTracker(db, tight)
    user = await create_user(db)
    now = utcnow()
    limits = await tracker.check_and_reset(user.id, now)
    await tracker.increment(limits, "on_grid")
    assert (await tracker.check_and_reset(user.id, now + timedelta(hours=1))).on_grid_likes_count == 0
