"""Like, superlike and compliment endpoints."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_notifier, get_policy
from apps.engine.likes import LikeMatchStateMachine
from apps.engine.limits import ActivityLimitTracker
from apps.engine.search import candidate_card
from apps.workers.notifier import Notifier
from core.auth import current_user_id
from core.clock import utcnow
from core.config import MatchPolicy
from core.errors import NotFoundError
from models import User

router = APIRouter(prefix="/likes", tags=["likes"])


class LikeIn(BaseModel):
    """Input model for liking a user."""

    target_user_id: int
    is_on_grid: bool = True
    is_superlike: bool = False


class ComplimentIn(BaseModel):
    target_user_id: int
    message: str = Field(min_length=1, max_length=300)


@router.post("")
async def like_user(
    body: LikeIn,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, Any]:
    """
    Like a user.

    Returns:
        {"message", "is_match", "match_id", "likes_remaining": {"on_grid", "off_grid"}}
    """
    outcome = await LikeMatchStateMachine(db, policy).like(
        user_id, body.target_user_id, is_on_grid=body.is_on_grid, is_superlike=body.is_superlike
    )
    background_tasks.add_task(notifier.dispatch, outcome.events)

    response: dict[str, Any] = {
        "message": "It's a match!" if outcome.is_match else "Like sent",
        "is_match": outcome.is_match,
        "match_id": outcome.match_id,
        "likes_remaining": outcome.likes_remaining,
    }
    if outcome.credit_balance is not None:
        response["credit_balance"] = outcome.credit_balance
    if outcome.cooldown_until is not None:
        response["cooldown_until"] = outcome.cooldown_until.isoformat()
    return response


@router.post("/compliment")
async def send_compliment(
    body: ComplimentIn,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
    notifier: Notifier = Depends(get_notifier),
) -> dict[str, Any]:
    outcome = await LikeMatchStateMachine(db, policy).compliment(user_id, body.target_user_id, body.message)
    background_tasks.add_task(notifier.dispatch, outcome.events)
    return {
        "message": "Compliment sent",
        "is_match": outcome.is_match,
        "match_id": outcome.match_id,
        "credit_balance": outcome.credit_balance,
    }


@router.get("/remaining")
async def likes_remaining(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """Remaining likes and messages in the current window. Never writes."""
    now = utcnow()
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    tracker = ActivityLimitTracker(db, policy)
    limits = await tracker.peek(user_id, now)
    quota = policy.quota_for(user.gender)
    remaining = tracker.remaining(limits, quota)

    return {
        "on_grid_remaining": remaining["on_grid"],
        "off_grid_remaining": remaining["off_grid"],
        "messages_remaining": tracker.messages_remaining(user, limits, now),
        "is_premium": user.premium_active(now),
        "reset_in_hours": tracker.reset_in_hours(limits, now),
    }


@router.get("/received")
async def likes_received(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """People who liked the caller and are still waiting for a like back."""
    now = utcnow()
    rows = await LikeMatchStateMachine(db, policy).likes_received(user_id)
    return {
        "likes": [
            {
                "like_id": like.id,
                "is_on_grid": like.is_on_grid,
                "is_superlike": like.is_superlike,
                "is_compliment": like.is_compliment,
                "compliment_message": like.compliment_message,
                "created_at": like.created_at.isoformat(),
                "user": candidate_card(liker, profile, privacy, None, None, now),
            }
            for like, liker, profile, privacy in rows
        ]
    }
