"""Admin moderation endpoints (HTTP Basic)."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db
from core.auth import admin_basic_auth
from core.errors import NotFoundError
from core.metrics import moderation_actions_total
from models import ModerationAction, Report, User

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


class ModerationIn(BaseModel):
    reason: str | None = Field(None, max_length=1000)


async def _set_banned(db: AsyncSession, user_id: int, banned: bool, actor: str, reason: str | None) -> User:
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    action = "ban" if banned else "unban"
    user.is_banned = banned
    db.add(ModerationAction(target_user=user_id, action=action, actor=actor, reason=reason))
    await db.commit()

    moderation_actions_total.labels(action=action).inc()
    logger.info(f"Admin {actor} applied {action} to user {user_id}")
    return user


@router.post("/users/{user_id}/ban")
async def ban_user(
    user_id: int,
    body: ModerationIn | None = None,
    db: AsyncSession = Depends(get_db),
    admin: str = Depends(admin_basic_auth),
) -> dict[str, Any]:
    """Suspend an account: hidden from search and unable to authenticate."""
    user = await _set_banned(db, user_id, True, admin, body.reason if body else None)
    return {"ok": True, "user_id": user.id, "is_banned": user.is_banned}


@router.post("/users/{user_id}/unban")
async def unban_user(
    user_id: int,
    body: ModerationIn | None = None,
    db: AsyncSession = Depends(get_db),
    admin: str = Depends(admin_basic_auth),
) -> dict[str, Any]:
    user = await _set_banned(db, user_id, False, admin, body.reason if body else None)
    return {"ok": True, "user_id": user.id, "is_banned": user.is_banned}


@router.get("/reports")
async def open_reports(
    db: AsyncSession = Depends(get_db),
    admin: str = Depends(admin_basic_auth),
) -> dict[str, Any]:
    """Reports awaiting review, newest first."""
    rows = (
        await db.execute(
            select(Report).where(Report.status.in_(("new", "in_review"))).order_by(Report.created_at.desc()).limit(100)
        )
    ).scalars()
    return {
        "reports": [
            {
                "id": r.id,
                "reporter_id": r.reporter_id,
                "reported_id": r.reported_id,
                "reason": r.reason,
                "comment": r.comment,
                "status": r.status,
                "created_at": r.created_at.isoformat(),
            }
            for r in rows
        ]
    }
