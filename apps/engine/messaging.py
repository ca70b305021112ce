"""Messaging between matched users."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from apps.engine.limits import ActivityLimitTracker
from apps.engine.safety import is_blocked
from apps.workers.notifier import Notification
from core.clock import utcnow
from core.config import MatchPolicy
from core.db import transaction
from core.errors import AuthorizationError, ForbiddenError, NotFoundError, ValidationError
from core.metrics import messages_sent_total
from models.chat import Message
from models.match import Match
from models.user import User

logger = logging.getLogger(__name__)

MESSAGE_TYPES = {"text", "image", "voice"}
MAX_MESSAGE_LENGTH = 2000


@dataclass
class SendOutcome:
    message: Message
    messages_remaining: int | None
    events: list[Notification] = field(default_factory=list)


class MessageService:
    """Sends, lists and deletes messages inside a match."""

    def __init__(self, db: AsyncSession, policy: MatchPolicy) -> None:
        self.db = db
        self.policy = policy
        self.limits = ActivityLimitTracker(db, policy)

    async def _participant_match(self, user_id: int, match_id: int) -> Match:
        match = (await self.db.execute(select(Match).where(Match.id == match_id))).scalar_one_or_none()
        if match is None or user_id not in (match.user1_id, match.user2_id):
            raise NotFoundError("Match not found")
        return match

    async def send(self, sender_id: int, match_id: int, content: str, message_type: str = "text") -> SendOutcome:
        """
        Send a message; non-premium senders are capped per reset window by their gender quota.

        Raises:
            NotFoundError: Match missing or sender not a participant
            AuthorizationError: Block between the pair
            QuotaExceededError: Daily message cap reached
        """
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
        if message_type not in MESSAGE_TYPES:
            raise ValidationError(f"message_type must be one of: {', '.join(sorted(MESSAGE_TYPES))}")

        now = utcnow()
        async with transaction(self.db):
            match = await self._participant_match(sender_id, match_id)
            recipient_id = match.other(sender_id)

            if await is_blocked(self.db, sender_id, recipient_id):
                raise AuthorizationError("Cannot message this user")

            sender = (await self.db.execute(select(User).where(User.id == sender_id))).scalar_one()

            limits = await self.limits.check_and_reset(sender_id, now)
            self.limits.enforce_message_quota(sender, limits, now)

            message = Message(
                match_id=match_id,
                sender_id=sender_id,
                recipient_id=recipient_id,
                content=content,
                message_type=message_type,
                created_at=now,
            )
            self.db.add(message)
            match.last_message_at = now
            await self.db.flush()

            limits = await self.limits.increment(limits, "messages")

            remaining = self.limits.messages_remaining(sender, limits, now)

        messages_sent_total.inc()
        event = Notification(
            recipient_id,
            "message_received",
            {
                "match_id": match_id,
                "message_id": message.id,
                "sender_id": sender_id,
                "name": sender.name,
                "preview": content[:80] if message_type == "text" else message_type,
            },
        )
        return SendOutcome(message=message, messages_remaining=remaining, events=[event])

    async def history(self, user_id: int, match_id: int, limit: int = 50, before_id: int | None = None) -> list[Message]:
        """Return a page of messages, oldest first, and mark those received as read."""
        async with transaction(self.db):
            await self._participant_match(user_id, match_id)

            stmt = select(Message).where(Message.match_id == match_id, Message.is_deleted.is_(False))
            if before_id is not None:
                stmt = stmt.where(Message.id < before_id)
            rows = (await self.db.execute(stmt.order_by(Message.id.desc()).limit(limit))).scalars().all()

            await self.db.execute(
                update(Message)
                .where(Message.match_id == match_id, Message.recipient_id == user_id, Message.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )

        return list(reversed(rows))

    async def conversations(self, user_id: int) -> list[dict]:
        """Matches with their last message and unread count, most recent first."""
        matches = (
            await self.db.execute(
                select(Match, User)
                .join(User, User.id == case((Match.user1_id == user_id, Match.user2_id), else_=Match.user1_id))
                .where(or_(Match.user1_id == user_id, Match.user2_id == user_id))
                .order_by(func.coalesce(Match.last_message_at, Match.matched_at).desc())
            )
        ).all()

        conversations = []
        for match, other in matches:
            if await is_blocked(self.db, user_id, other.id):
                continue

            last = (
                await self.db.execute(
                    select(Message)
                    .where(Message.match_id == match.id, Message.is_deleted.is_(False))
                    .order_by(Message.id.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            unread = (
                await self.db.execute(
                    select(func.count(Message.id)).where(
                        and_(
                            Message.match_id == match.id,
                            Message.recipient_id == user_id,
                            Message.is_read.is_(False),
                            Message.is_deleted.is_(False),
                        )
                    )
                )
            ).scalar_one()

            conversations.append(
                {
                    "match_id": match.id,
                    "user": {"id": other.id, "name": other.name, "is_verified": other.is_verified},
                    "last_message": (
                        {
                            "id": last.id,
                            "content": last.content,
                            "message_type": last.message_type,
                            "sender_id": last.sender_id,
                            "created_at": last.created_at.isoformat(),
                        }
                        if last
                        else None
                    ),
                    "unread_count": unread,
                    "matched_at": match.matched_at.isoformat(),
                }
            )
        return conversations

    async def delete(self, user_id: int, message_id: int) -> None:
        """Soft-delete a message; only its sender, only within the delete window."""
        async with transaction(self.db):
            message = (await self.db.execute(select(Message).where(Message.id == message_id))).scalar_one_or_none()
            if message is None or message.is_deleted:
                raise NotFoundError("Message not found")
            if message.sender_id != user_id:
                raise ForbiddenError("You can only delete your own messages")

            window = timedelta(minutes=self.policy.message_delete_window_minutes)
            if utcnow() - message.created_at > window:
                raise ValidationError(
                    f"Messages can only be deleted within {self.policy.message_delete_window_minutes} minutes"
                )
            message.is_deleted = True
