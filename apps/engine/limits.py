"""Rolling-window activity limits and post-quota cooldown."""

import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.config import GenderQuota, MatchPolicy
from core.db import dialect_insert
from core.errors import QuotaExceededError
from core.metrics import cooldowns_started_total, likes_rejected_total
from models.limits import ActivityLimits
from models.user import User

logger = logging.getLogger(__name__)

_COUNTERS = {
    "on_grid": ActivityLimits.on_grid_likes_count,
    "off_grid": ActivityLimits.off_grid_likes_count,
    "messages": ActivityLimits.messages_started_count,
}


class ActivityLimitTracker:
    """Per-user like and message counters with a 12h rolling reset window."""

    def __init__(self, db: AsyncSession, policy: MatchPolicy) -> None:
        self.db = db
        self.policy = policy

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.policy.reset_window_hours)

    async def ensure_row(self, user_id: int, now: datetime | None = None) -> None:
        """Create the limits row lazily; concurrent creators converge on one row."""
        stmt = (
            dialect_insert(self.db, ActivityLimits)
            .values(
                user_id=user_id,
                on_grid_likes_count=0,
                off_grid_likes_count=0,
                messages_started_count=0,
                last_reset_at=now or utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self.db.execute(stmt)

    async def check_and_reset(self, user_id: int, now: datetime | None = None) -> ActivityLimits:
        """
        Load the user's counters under a row lock, zeroing them when the window elapsed.

        The lock is held until the caller's transaction ends, which serializes
        quota checks for one user.

        Returns:
            The locked, possibly reset, ActivityLimits row
        """
        now = now or utcnow()
        await self.ensure_row(user_id, now)

        result = await self.db.execute(
            select(ActivityLimits)
            .where(ActivityLimits.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        limits = result.scalar_one()

        if now - limits.last_reset_at >= self.window:
            logger.debug(f"Resetting activity window for user {user_id}")
            limits.on_grid_likes_count = 0
            limits.off_grid_likes_count = 0
            limits.messages_started_count = 0
            limits.last_reset_at = now
            await self.db.flush()

        return limits

    async def peek(self, user_id: int, now: datetime | None = None) -> ActivityLimits:
        """Read-only view of the counters as they would look after a reset check."""
        now = now or utcnow()
        limits = (
            await self.db.execute(select(ActivityLimits).where(ActivityLimits.user_id == user_id))
        ).scalar_one_or_none()
        if limits is None or now - limits.last_reset_at >= self.window:
            return ActivityLimits(
                user_id=user_id,
                on_grid_likes_count=0,
                off_grid_likes_count=0,
                messages_started_count=0,
                last_reset_at=now,
            )
        return limits

    def reset_in_hours(self, limits: ActivityLimits, now: datetime | None = None) -> int:
        now = now or utcnow()
        remaining = limits.last_reset_at + self.window - now
        return max(0, math.ceil(remaining.total_seconds() / 3600))

    def enforce_like_quota(self, user: User, limits: ActivityLimits, is_on_grid: bool, now: datetime | None = None) -> None:
        """
        Raise when a non-premium user has exhausted the like quota for this grid.

        Raises:
            QuotaExceededError: 429 carrying the limit and hours until reset
        """
        if user.premium_active(now or utcnow()):
            return

        quota = self.policy.quota_for(user.gender)
        if is_on_grid:
            used, limit, kind = limits.on_grid_likes_count, quota.on_grid_likes, "on_grid"
        else:
            used, limit, kind = limits.off_grid_likes_count, quota.off_grid_likes, "off_grid"

        if used >= limit:
            likes_rejected_total.labels(reason="quota").inc()
            raise QuotaExceededError(
                f"Daily {kind.replace('_', '-')} like limit reached",
                kind=kind,
                limit=limit,
                reset_in_hours=self.reset_in_hours(limits, now),
            )

    def messages_remaining(self, user: User, limits: ActivityLimits, now: datetime | None = None) -> int | None:
        """Messages left in the window; None when the sender is uncapped (premium)."""
        if user.premium_active(now or utcnow()):
            return None
        return max(0, self.policy.quota_for(user.gender).messages_per_day - limits.messages_started_count)

    def enforce_message_quota(self, user: User, limits: ActivityLimits, now: datetime | None = None) -> None:
        if user.premium_active(now or utcnow()):
            return

        limit = self.policy.quota_for(user.gender).messages_per_day
        if limits.messages_started_count >= limit:
            raise QuotaExceededError(
                "Daily message limit reached",
                kind="messages",
                limit=limit,
                reset_in_hours=self.reset_in_hours(limits, now),
            )

    async def increment(self, limits: ActivityLimits, kind: str) -> ActivityLimits:
        """Bump one counter in SQL and refresh the locked row."""
        column = _COUNTERS[kind]
        await self.db.execute(
            update(ActivityLimits)
            .where(ActivityLimits.user_id == limits.user_id)
            .values({column.key: column + 1})
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(limits)
        return limits

    def remaining(self, limits: ActivityLimits, quota: GenderQuota) -> dict[str, int]:
        return {
            "on_grid": max(0, quota.on_grid_likes - limits.on_grid_likes_count),
            "off_grid": max(0, quota.off_grid_likes - limits.off_grid_likes_count),
        }

    async def maybe_start_cooldown(self, user: User, limits: ActivityLimits, now: datetime | None = None) -> datetime | None:
        """
        Put a cooldown-enabled user into cooldown once their combined quota is spent.

        Returns:
            The new cooldown end, or None when no cooldown was started
        """
        if not user.cooldown_enabled:
            return None

        quota = self.policy.quota_for(user.gender)
        if limits.total_likes < quota.total_likes:
            return None

        now = now or utcnow()
        user.cooldown_until = now + timedelta(hours=self.policy.cooldown_hours)
        await self.db.flush()
        cooldowns_started_total.inc()
        logger.info(f"User {user.id} entered cooldown until {user.cooldown_until.isoformat()}")
        return user.cooldown_until
