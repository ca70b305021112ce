"""Credit ledger: the only writer of users.credit_balance."""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.errors import InsufficientCreditsError, NotFoundError, ValidationError
from core.metrics import credits_debited_total, credits_granted_total, insufficient_credits_total
from models.credit import CreditTransaction
from models.user import User

logger = logging.getLogger(__name__)


class CreditLedger:
    """Atomic debits and grants against a user's credit balance.

    Callers own the transaction: nothing here commits, so a debit rolls back
    together with whatever business write it paid for.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_balance(self, user_id: int) -> int:
        balance = (await self.db.execute(select(User.credit_balance).where(User.id == user_id))).scalar_one_or_none()
        if balance is None:
            raise NotFoundError("User not found")
        return balance

    async def consume(self, user_id: int, amount: int, reason: str, metadata: dict[str, Any] | None = None) -> int:
        """
        Debit credits if and only if the balance covers the amount.

        The check and the decrement are a single conditional UPDATE, so two
        concurrent debits can never take the balance below zero.

        Args:
            user_id: Account to debit
            amount: Positive number of credits
            reason: Ledger reason (superlike, compliment, ai_search, ...)
            metadata: Free-form context stored with the ledger entry

        Returns:
            Balance after the debit

        Raises:
            InsufficientCreditsError: Balance is lower than amount (nothing written)
        """
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.credit_balance >= amount)
            .values(credit_balance=User.credit_balance - amount, updated_at=utcnow())
            .returning(User.credit_balance)
        )
        new_balance = result.scalar_one_or_none()

        if new_balance is None:
            balance = await self.get_balance(user_id)
            insufficient_credits_total.labels(reason=reason).inc()
            logger.info(f"Debit refused: user={user_id} reason={reason} required={amount} balance={balance}")
            raise InsufficientCreditsError(required=amount, balance=balance)

        self.db.add(
            CreditTransaction(
                user_id=user_id, amount=amount, direction="debit", reason=reason, meta=metadata or {}
            )
        )
        await self.db.flush()
        credits_debited_total.labels(reason=reason).inc(amount)
        logger.debug(f"Debited {amount} from user {user_id} ({reason}), balance={new_balance}")
        return new_balance

    async def grant(self, user_id: int, amount: int, reason: str, metadata: dict[str, Any] | None = None) -> int:
        """Credit the account and record the ledger entry. Returns the new balance."""
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(credit_balance=User.credit_balance + amount, updated_at=utcnow())
            .returning(User.credit_balance)
        )
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            raise NotFoundError("User not found")

        self.db.add(
            CreditTransaction(
                user_id=user_id, amount=amount, direction="credit", reason=reason, meta=metadata or {}
            )
        )
        await self.db.flush()
        credits_granted_total.labels(reason=reason).inc(amount)
        logger.debug(f"Granted {amount} to user {user_id} ({reason}), balance={new_balance}")
        return new_balance

    async def history(self, user_id: int, limit: int = 50) -> list[CreditTransaction]:
        result = await self.db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
