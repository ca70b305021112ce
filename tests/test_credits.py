from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.engine.credits import CreditLedger
from core.db import AsyncSessionLocal
from core.errors import InsufficientCreditsError, NotFoundError, ValidationError
from helpers import create_user
from models import CreditTransaction


@pytest_asyncio.fixture
async def db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


async def _transactions(db: AsyncSession, user_id: int) -> list[CreditTransaction]:
    return list(
        (await db.execute(select(CreditTransaction).where(CreditTransaction.user_id == user_id))).scalars().all()
    )


@pytest.mark.asyncio
async def test_consume_debits_and_records_entry(db):
    user = await create_user(db, credit_balance=10)
    ledger = CreditLedger(db)

    assert await ledger.consume(user.id, 3, "superlike", {"target_user_id": 99}) == 7
    assert await ledger.get_balance(user.id) == 7

    [tx] = await _transactions(db, user.id)
    assert tx.direction == "debit"
    assert tx.amount == 3
    assert tx.reason == "superlike"
    assert tx.meta == {"target_user_id": 99}


@pytest.mark.asyncio
async def test_consume_refuses_uncovered_amount_and_writes_nothing(db):
    user = await create_user(db, credit_balance=3)
    ledger = CreditLedger(db)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await ledger.consume(user.id, 5, "superlike")

    assert exc_info.value.required == 5
    assert exc_info.value.balance == 3
    assert exc_info.value.status_code == 402
    assert await ledger.get_balance(user.id) == 3
    assert await _transactions(db, user.id) == []


@pytest.mark.asyncio
async def test_balance_never_negative_and_ledger_reconciles(db):
    user = await create_user(db, credit_balance=10)
    ledger = CreditLedger(db)

    await ledger.consume(user.id, 4, "compliment")
    await ledger.consume(user.id, 4, "compliment")
    with pytest.raises(InsufficientCreditsError):
        await ledger.consume(user.id, 4, "compliment")

    final = await ledger.get_balance(user.id)
    assert final == 2
    debits = sum(tx.amount for tx in await _transactions(db, user.id) if tx.direction == "debit")
    assert debits == 10 - final


@pytest.mark.asyncio
async def test_exact_balance_can_be_spent(db):
    user = await create_user(db, credit_balance=5)
    assert await CreditLedger(db).consume(user.id, 5, "superlike") == 0


@pytest.mark.asyncio
async def test_grant_credits_and_history_is_newest_first(db):
    user = await create_user(db, credit_balance=0)
    ledger = CreditLedger(db)

    assert await ledger.grant(user.id, 10, "starter_purchase") == 10
    await ledger.consume(user.id, 1, "ai_search")

    history = await ledger.history(user.id)
    assert [(tx.direction, tx.reason) for tx in history] == [("debit", "ai_search"), ("credit", "starter_purchase")]
    credits = sum(tx.amount for tx in history if tx.direction == "credit")
    debits = sum(tx.amount for tx in history if tx.direction == "debit")
    assert credits - debits == await ledger.get_balance(user.id)


@pytest.mark.asyncio
async def test_unknown_user(db):
    ledger = CreditLedger(db)
    with pytest.raises(NotFoundError):
        await ledger.get_balance(424242)
    with pytest.raises(NotFoundError):
        await ledger.consume(424242, 1, "ai_search")
    with pytest.raises(NotFoundError):
        await ledger.grant(424242, 1, "starter_purchase")


@pytest.mark.asyncio
async def test_non_positive_amount_is_rejected(db):
    user = await create_user(db, credit_balance=5)
    with pytest.raises(ValidationError):
        await CreditLedger(db).consume(user.id, 0, "superlike")
    with pytest.raises(ValidationError):
        await CreditLedger(db).grant(user.id, -1, "refund")
