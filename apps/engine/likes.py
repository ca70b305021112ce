"""Like and match state machine."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import case, exists, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from apps.engine.credits import CreditLedger
from apps.engine.limits import ActivityLimitTracker
from apps.engine.safety import block_between, is_blocked, purge_pair
from apps.workers.notifier import Notification
from core.clock import utcnow
from core.config import MatchPolicy
from core.db import dialect_insert, transaction
from core.errors import AuthorizationError, ConflictError, CooldownActiveError, NotFoundError, ValidationError
from core.metrics import likes_rejected_total, likes_total, matches_created_total, unmatches_total
from models.like import Like
from models.match import Match
from models.profile import Profile
from models.user import PrivacySettings, User

logger = logging.getLogger(__name__)

LikeBack = aliased(Like)


@dataclass
class LikeOutcome:
    is_match: bool
    match_id: int | None
    likes_remaining: dict[str, int]
    cooldown_until: datetime | None = None
    credit_balance: int | None = None
    events: list[Notification] = field(default_factory=list)


@dataclass
class ComplimentOutcome:
    is_match: bool
    match_id: int | None
    credit_balance: int
    events: list[Notification] = field(default_factory=list)


class LikeMatchStateMachine:
    """
    Transactional like handling.

    Every public operation runs as one unit: a raise anywhere rolls back the
    like row, the counter increment and any credit debit together. Events are
    returned, not sent, so delivery happens only after commit.
    """

    def __init__(self, db: AsyncSession, policy: MatchPolicy) -> None:
        self.db = db
        self.policy = policy
        self.limits = ActivityLimitTracker(db, policy)
        self.ledger = CreditLedger(db)

    async def _lock_pair(self, a: int, b: int) -> dict[int, User]:
        """
        Lock both user rows in (min, max) order.

        Reciprocal likes on the same pair queue on the lower id, so the second
        one always sees the first one's like and creates the match.
        """
        rows = (
            await self.db.execute(select(User).where(User.id.in_(sorted((a, b)))).order_by(User.id).with_for_update())
        ).scalars()
        return {user.id: user for user in rows}

    async def _like_exists(self, liker_id: int, liked_id: int) -> Like | None:
        return (
            await self.db.execute(select(Like).where(Like.liker_id == liker_id, Like.liked_id == liked_id))
        ).scalar_one_or_none()

    async def create_match(self, a: int, b: int) -> tuple[int, bool]:
        """
        Create the match for an unordered pair, or find the one that already exists.

        The pair is stored as (min, max) and inserted with ON CONFLICT DO NOTHING,
        so two racing reciprocal likes leave exactly one row.

        Returns:
            (match_id, created)
        """
        lo, hi = sorted((a, b))
        result = await self.db.execute(
            dialect_insert(self.db, Match)
            .values(user1_id=lo, user2_id=hi, matched_at=utcnow())
            .on_conflict_do_nothing(index_elements=["user1_id", "user2_id"])
            .returning(Match.id)
        )
        match_id = result.scalar_one_or_none()
        if match_id is not None:
            return match_id, True

        existing = (
            await self.db.execute(select(Match.id).where(Match.user1_id == lo, Match.user2_id == hi))
        ).scalar_one()
        return existing, False

    def _match_events(self, match_id: int, a: User, b: User) -> list[Notification]:
        return [
            Notification(a.id, "match_created", {"match_id": match_id, "user_id": b.id, "name": b.name}),
            Notification(b.id, "match_created", {"match_id": match_id, "user_id": a.id, "name": a.name}),
        ]

    async def like(self, liker_id: int, target_id: int, is_on_grid: bool = True, is_superlike: bool = False) -> LikeOutcome:
        """
        Like a user; creates the match when the like is reciprocated.

        Raises:
            ValidationError: Self-like
            NotFoundError: Unknown target
            QuotaExceededError: Non-premium liker exhausted the grid quota
            CooldownActiveError: Target in cooldown, liker not premium
            AuthorizationError: Block between the pair
            ConflictError: Like already exists
            InsufficientCreditsError: Superlike not covered by the balance
        """
        if liker_id == target_id:
            raise ValidationError("Cannot like yourself")

        grid = "on_grid" if is_on_grid else "off_grid"
        now = utcnow()

        async with transaction(self.db):
            users = await self._lock_pair(liker_id, target_id)
            target = users.get(target_id)
            if target is None or target.is_banned:
                raise NotFoundError("User not found")

            liker = users.get(liker_id)
            if liker is None:
                raise NotFoundError("User not found")

            limits = await self.limits.check_and_reset(liker_id, now)
            self.limits.enforce_like_quota(liker, limits, is_on_grid, now)

            if target.in_cooldown(now) and not liker.premium_active(now):
                likes_rejected_total.labels(reason="cooldown").inc()
                raise CooldownActiveError()

            if await is_blocked(self.db, liker_id, target_id):
                likes_rejected_total.labels(reason="blocked").inc()
                raise AuthorizationError("Cannot like this user")

            if await self._like_exists(liker_id, target_id) is not None:
                likes_rejected_total.labels(reason="duplicate").inc()
                raise ConflictError("You already liked this user")

            credit_balance = None
            if is_superlike:
                credit_balance = await self.ledger.consume(
                    liker_id, self.policy.superlike_cost, "superlike", {"target_user_id": target_id}
                )

            self.db.add(Like(liker_id=liker_id, liked_id=target_id, is_on_grid=is_on_grid, is_superlike=is_superlike))
            try:
                await self.db.flush()
            except IntegrityError:
                likes_rejected_total.labels(reason="duplicate").inc()
                raise ConflictError("You already liked this user") from None

            limits = await self.limits.increment(limits, grid)

            events: list[Notification] = []
            match_id = None
            if await self._like_exists(target_id, liker_id) is not None:
                match_id, created = await self.create_match(liker_id, target_id)
                if created:
                    matches_created_total.inc()
                    logger.info(f"Match {match_id} created between {liker_id} and {target_id}")
                    events.extend(self._match_events(match_id, liker, target))
            else:
                events.append(
                    Notification(
                        target_id,
                        "like_received",
                        {"user_id": liker_id, "name": liker.name, "is_superlike": is_superlike},
                    )
                )

            cooldown_until = await self.limits.maybe_start_cooldown(liker, limits, now)
            remaining = self.limits.remaining(limits, self.policy.quota_for(liker.gender))

        likes_total.labels(grid=grid, kind="superlike" if is_superlike else "like").inc()
        return LikeOutcome(
            is_match=match_id is not None,
            match_id=match_id,
            likes_remaining=remaining,
            cooldown_until=cooldown_until,
            credit_balance=credit_balance,
            events=events,
        )

    async def compliment(self, liker_id: int, target_id: int, message: str) -> ComplimentOutcome:
        """
        Send a paid compliment: upgrades an existing like or creates an on-grid one.

        Not gated by the daily like quota. The debit happens first, so an
        uncovered compliment writes nothing.
        """
        message = (message or "").strip()
        if not message:
            raise ValidationError("Compliment message is required")
        if liker_id == target_id:
            raise ValidationError("Cannot compliment yourself")

        async with transaction(self.db):
            users = await self._lock_pair(liker_id, target_id)
            target = users.get(target_id)
            if target is None or target.is_banned:
                raise NotFoundError("User not found")
            liker = users.get(liker_id)
            if liker is None:
                raise NotFoundError("User not found")

            if await is_blocked(self.db, liker_id, target_id):
                raise AuthorizationError("Cannot compliment this user")

            balance = await self.ledger.consume(
                liker_id, self.policy.compliment_cost, "compliment", {"target_user_id": target_id}
            )

            existing = await self._like_exists(liker_id, target_id)
            if existing is not None:
                existing.is_compliment = True
                existing.compliment_message = message
            else:
                self.db.add(
                    Like(
                        liker_id=liker_id,
                        liked_id=target_id,
                        is_on_grid=True,
                        is_compliment=True,
                        compliment_message=message,
                    )
                )
            await self.db.flush()

            events = [
                Notification(
                    target_id,
                    "compliment_received",
                    {"user_id": liker_id, "name": liker.name, "preview": message[:80]},
                )
            ]
            match_id = None
            if await self._like_exists(target_id, liker_id) is not None:
                match_id, created = await self.create_match(liker_id, target_id)
                if created:
                    matches_created_total.inc()
                    events.extend(self._match_events(match_id, liker, target))

        likes_total.labels(grid="on_grid", kind="compliment").inc()
        return ComplimentOutcome(
            is_match=match_id is not None, match_id=match_id, credit_balance=balance, events=events
        )

    async def unmatch(self, user_id: int, match_id: int) -> None:
        """Delete a match, its messages and both likes so the pair can match again."""
        async with transaction(self.db):
            match = (
                await self.db.execute(select(Match).where(Match.id == match_id).with_for_update())
            ).scalar_one_or_none()
            if match is None or user_id not in (match.user1_id, match.user2_id):
                raise NotFoundError("Match not found")

            await purge_pair(self.db, match.user1_id, match.user2_id)

        unmatches_total.inc()
        logger.info(f"User {user_id} removed match {match_id}")

    async def matches_for(self, user_id: int) -> list[tuple[Match, User, Profile | None, PrivacySettings | None]]:
        """The user's matches with the other participant, blocked pairs excluded."""
        other_id = case((Match.user1_id == user_id, Match.user2_id), else_=Match.user1_id)
        result = await self.db.execute(
            select(Match, User, Profile, PrivacySettings)
            .join(User, User.id == other_id)
            .outerjoin(Profile, Profile.user_id == User.id)
            .outerjoin(PrivacySettings, PrivacySettings.user_id == User.id)
            .where(
                or_(Match.user1_id == user_id, Match.user2_id == user_id),
                ~block_between(user_id, User.id),
            )
            .order_by(func.coalesce(Match.last_message_at, Match.matched_at).desc(), Match.id.desc())
        )
        return [(row[0], row[1], row[2], row[3]) for row in result.all()]

    async def likes_received(self, user_id: int) -> list[tuple[Like, User, Profile | None, PrivacySettings | None]]:
        """Pending likes: people who liked the user and have not been liked back."""
        result = await self.db.execute(
            select(Like, User, Profile, PrivacySettings)
            .join(User, User.id == Like.liker_id)
            .outerjoin(Profile, Profile.user_id == User.id)
            .outerjoin(PrivacySettings, PrivacySettings.user_id == User.id)
            .where(
                Like.liked_id == user_id,
                User.is_banned.is_(False),
                ~exists().where(LikeBack.liker_id == user_id, LikeBack.liked_id == Like.liker_id),
                ~block_between(user_id, User.id),
            )
            .order_by(Like.is_compliment.desc(), Like.is_superlike.desc(), Like.created_at.desc())
        )
        return [(row[0], row[1], row[2], row[3]) for row in result.all()]
