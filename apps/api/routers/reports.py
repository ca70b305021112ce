"""Reports endpoints for safety & moderation."""

import logging
import time

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db
from core.auth import current_user_id
from core.config import settings
from core.errors import NotFoundError, RateLimitedError, ValidationError
from core.metrics import reports_latency_seconds, reports_total
from core.redis import get_redis
from models import Report, User

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)

VALID_REASONS = {"spam", "abuse", "fake", "inappropriate", "other"}
REPORT_COOLDOWN_SECONDS = 60


class ReportIn(BaseModel):
    """Input model for creating a report."""

    target_user_id: int
    reason: str  # spam|abuse|fake|inappropriate|other
    comment: str | None = Field(None, max_length=1000)


async def _throttle(user_id: int) -> None:
    """One report per minute per user."""
    if not settings.rate_limit_enabled:
        return
    try:
        redis = await get_redis()
        rl_key = f"rl:report:{user_id}"
        if not await redis.set(rl_key, "1", nx=True, ex=REPORT_COOLDOWN_SECONDS):
            ttl = await redis.ttl(rl_key)
            raise RateLimitedError(
                "Too many reports. Please wait before reporting again.",
                retry_after_seconds=max(int(ttl), 1),
            )
    except RateLimitedError:
        raise
    except Exception as e:
        logger.error(f"Report throttle unavailable: {e}")


@router.post("", status_code=201)
async def create_report(
    body: ReportIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, object]:
    """
    Create a new report (complaint) from one user about another.

    Validates:
    - Reason is in allowed list
    - Target exists and is not the caller
    - Rate limit: 1 report per 60 seconds per user

    Returns:
        {"ok": True, "report_id": ...}
    """
    t0 = time.perf_counter()
    try:
        if body.reason not in VALID_REASONS:
            raise ValidationError(f"Invalid reason. Must be one of: {', '.join(sorted(VALID_REASONS))}")
        if body.target_user_id == user_id:
            raise ValidationError("Cannot report yourself")

        target = (await db.execute(select(User.id).where(User.id == body.target_user_id))).scalar_one_or_none()
        if target is None:
            raise NotFoundError("User not found")

        await _throttle(user_id)

        report = Report(
            reporter_id=user_id,
            reported_id=body.target_user_id,
            reason=body.reason,
            comment=(body.comment or "").strip() or None,
        )
        db.add(report)
        await db.commit()

        reports_total.labels(reason=body.reason).inc()
        logger.info(f"Report created: from={user_id}, to={body.target_user_id}, reason={body.reason}")

        return {"ok": True, "report_id": report.id}

    finally:
        reports_latency_seconds.observe(time.perf_counter() - t0)
