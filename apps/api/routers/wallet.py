"""Wallet endpoints: balance, ledger history and plan purchases."""

import logging
from datetime import timedelta
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_policy
from apps.engine.credits import CreditLedger
from core.auth import current_user_id
from core.clock import utcnow
from core.config import MatchPolicy
from core.db import transaction
from core.errors import NotFoundError
from models import CreditTransaction, User

router = APIRouter(prefix="/wallet", tags=["wallet"])
logger = logging.getLogger(__name__)

STARTER_CREDITS = 10
PREMIUM_CREDITS = 30
PURCHASE_REASONS = ("starter_purchase", "premium_purchase")


class PurchaseIn(BaseModel):
    """Plan purchase confirmed by the checkout flow."""

    plan: Literal["starter", "premium", "boost"]
    idempotency_key: str | None = Field(None, min_length=1, max_length=128)


def wallet_payload(user: User) -> dict[str, Any]:
    now = utcnow()
    return {
        "credit_balance": user.credit_balance,
        "is_premium": user.premium_active(now),
        "premium_expires_at": user.premium_expires_at.isoformat() if user.premium_expires_at else None,
        "boost_active": user.boost_active(now),
        "boost_expires_at": user.boost_expires_at.isoformat() if user.boost_active(now) else None,
    }


async def _already_applied(db: AsyncSession, user_id: int, key: str) -> bool:
    rows = (
        await db.execute(
            select(CreditTransaction.meta).where(
                CreditTransaction.user_id == user_id, CreditTransaction.reason.in_(PURCHASE_REASONS)
            )
        )
    ).scalars()
    return any((meta or {}).get("idempotency_key") == key for meta in rows)


@router.get("")
async def get_wallet(user_id: int = Depends(current_user_id), db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    transactions = await CreditLedger(db).history(user_id, limit=30)
    return {
        **wallet_payload(user),
        "transactions": [
            {
                "id": tx.id,
                "amount": tx.amount,
                "direction": tx.direction,
                "reason": tx.reason,
                "metadata": tx.meta,
                "created_at": tx.created_at.isoformat(),
            }
            for tx in transactions
        ],
    }


@router.post("/purchase")
async def purchase_plan(
    body: PurchaseIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """
    Apply a purchased plan.

    starter: +10 credits
    premium: +30 credits and premium for the configured number of days
    boost: boost for the configured number of hours

    A repeated idempotency key returns the wallet with duplicate=true and
    applies nothing.
    """
    ledger = CreditLedger(db)
    now = utcnow()

    async with transaction(db):
        user = (await db.execute(select(User).where(User.id == user_id).with_for_update())).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")

        if body.idempotency_key and await _already_applied(db, user_id, body.idempotency_key):
            return {"message": "Purchase already applied", "wallet": wallet_payload(user), "duplicate": True}

        metadata: dict[str, Any] = {"source": "checkout"}
        if body.idempotency_key:
            metadata["idempotency_key"] = body.idempotency_key

        if body.plan == "starter":
            await ledger.grant(user_id, STARTER_CREDITS, "starter_purchase", metadata)
        elif body.plan == "premium":
            user.is_premium = True
            user.premium_expires_at = now + timedelta(days=policy.premium_days)
            await ledger.grant(
                user_id, PREMIUM_CREDITS, "premium_purchase", {**metadata, "premium_days": policy.premium_days}
            )
        else:
            user.boost_expires_at = now + timedelta(hours=policy.boost_hours)

        await db.flush()
        await db.refresh(user)

    logger.info(f"Plan {body.plan} applied for user {user_id}")
    return {"message": "Purchase applied successfully", "wallet": wallet_payload(user), "duplicate": False}
