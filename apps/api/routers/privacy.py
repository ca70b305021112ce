"""Privacy settings and blocking endpoints."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db
from apps.api.serializers import privacy_payload
from apps.engine.safety import BlockService
from core.auth import current_user_id
from core.metrics import blocks_latency_seconds
from models import PrivacySettings

router = APIRouter(prefix="/privacy", tags=["privacy"])
logger = logging.getLogger(__name__)


class PrivacyIn(BaseModel):
    """Partial update of privacy switches."""

    hide_distance: bool | None = None
    hide_city: bool | None = None
    incognito_mode: bool | None = None
    show_online_status: bool | None = None


class BlockIn(BaseModel):
    """Input model for blocking or unblocking a user."""

    target_user_id: int


@router.get("/settings")
async def get_settings(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    privacy = (
        await db.execute(select(PrivacySettings).where(PrivacySettings.user_id == user_id))
    ).scalar_one_or_none()
    return privacy_payload(privacy)


@router.put("/settings")
async def update_settings(
    body: PrivacyIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    privacy = (
        await db.execute(select(PrivacySettings).where(PrivacySettings.user_id == user_id))
    ).scalar_one_or_none()
    if privacy is None:
        privacy = PrivacySettings(user_id=user_id)
        db.add(privacy)

    for key, value in body.model_dump(exclude_none=True).items():
        setattr(privacy, key, value)
    await db.commit()
    return privacy_payload(privacy)


@router.post("/block")
async def block_user(
    body: BlockIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """
    Block a user.

    Effects (one transaction):
    - Records the block (idempotent)
    - Deletes likes in both directions
    - Deletes the pair's match and its messages

    Returns:
        {"ok": True, "created": bool}
    """
    t0 = time.perf_counter()
    try:
        created = await BlockService(db).block(user_id, body.target_user_id)
        return {"ok": True, "created": created}
    finally:
        blocks_latency_seconds.observe(time.perf_counter() - t0)


@router.post("/unblock")
async def unblock_user(
    body: BlockIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    removed = await BlockService(db).unblock(user_id, body.target_user_id)
    return {"ok": True, "removed": removed}


@router.get("/blocked")
async def blocked_users(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    rows = await BlockService(db).blocked_users(user_id)
    return {
        "blocked": [
            {"user_id": user.id, "name": user.name, "blocked_at": block.created_at.isoformat()} for block, user in rows
        ]
    }
