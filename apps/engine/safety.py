"""Blocking: pair visibility checks and the purge that follows a block."""

import logging
from typing import Any

from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import Exists

from core.db import dialect_insert, transaction
from core.errors import NotFoundError, ValidationError
from core.metrics import blocks_total
from models.chat import Message
from models.like import Like
from models.match import Match
from models.safety import Block
from models.user import User

logger = logging.getLogger(__name__)


def block_between(a: Any, b: Any) -> Exists:
    """SQL condition true when a block exists in either direction between a and b."""
    return exists().where(
        or_(
            and_(Block.blocker_id == a, Block.blocked_id == b),
            and_(Block.blocker_id == b, Block.blocked_id == a),
        )
    )


async def is_blocked(db: AsyncSession, a: int, b: int) -> bool:
    return bool((await db.execute(select(block_between(a, b)))).scalar())


async def purge_pair(db: AsyncSession, a: int, b: int) -> None:
    """Delete likes in both directions, the match and its messages for the pair."""
    lo, hi = sorted((a, b))
    match_id = (
        await db.execute(select(Match.id).where(Match.user1_id == lo, Match.user2_id == hi))
    ).scalar_one_or_none()

    if match_id is not None:
        await db.execute(delete(Message).where(Message.match_id == match_id))
        await db.execute(delete(Match).where(Match.id == match_id))

    await db.execute(
        delete(Like).where(
            or_(
                and_(Like.liker_id == a, Like.liked_id == b),
                and_(Like.liker_id == b, Like.liked_id == a),
            )
        )
    )


class BlockService:
    """Creates and removes blocks."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def block(self, blocker_id: int, target_id: int) -> bool:
        """
        Block a user and purge everything linking the pair.

        Returns:
            True if a new block row was created, False if it already existed
        """
        if blocker_id == target_id:
            raise ValidationError("Cannot block yourself")

        async with transaction(self.db):
            target = (await self.db.execute(select(User.id).where(User.id == target_id))).scalar_one_or_none()
            if target is None:
                raise NotFoundError("User not found")

            result = await self.db.execute(
                dialect_insert(self.db, Block)
                .values(blocker_id=blocker_id, blocked_id=target_id)
                .on_conflict_do_nothing(index_elements=["blocker_id", "blocked_id"])
                .returning(Block.blocker_id)
            )
            created = result.scalar_one_or_none() is not None

            await purge_pair(self.db, blocker_id, target_id)

        if created:
            blocks_total.inc()
            logger.info(f"User {blocker_id} blocked user {target_id}")
        return created

    async def unblock(self, blocker_id: int, target_id: int) -> bool:
        async with transaction(self.db):
            result = await self.db.execute(
                delete(Block).where(Block.blocker_id == blocker_id, Block.blocked_id == target_id)
            )
        return bool(result.rowcount)

    async def blocked_users(self, blocker_id: int) -> list[tuple[Block, User]]:
        result = await self.db.execute(
            select(Block, User)
            .join(User, User.id == Block.blocked_id)
            .where(Block.blocker_id == blocker_id)
            .order_by(Block.created_at.desc())
        )
        return [(row[0], row[1]) for row in result.all()]
