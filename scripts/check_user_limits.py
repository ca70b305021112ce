#!/usr/bin/env python3
"""
Script to inspect a user's activity window and credit ledger.
"""

import asyncio
import os
import sys

from sqlalchemy import case, func, select

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apps.engine.limits import ActivityLimitTracker
from core.config import policy
from core.db import AsyncSessionLocal
from models import CreditTransaction, Match, User


async def check_user(email: str):
    """Show limits, remaining quota and ledger balance for one user."""

    async with AsyncSessionLocal() as db:
        try:
            result = await db.execute(select(User).where(User.email == email.lower()))
            user = result.scalar_one_or_none()

            if not user:
                print(f"User '{email}' not found")
                return

            print(f"User: {user.name} (ID: {user.id}, gender: {user.gender}, premium: {user.is_premium})")
            print(f"   Cooldown enabled: {user.cooldown_enabled}, until: {user.cooldown_until or '-'}")
            print()

            tracker = ActivityLimitTracker(db, policy)
            limits = await tracker.peek(user.id)
            remaining = tracker.remaining(limits, policy.quota_for(user.gender))
            print(f"Window started at {limits.last_reset_at}, resets in {tracker.reset_in_hours(limits)}h")
            print(f"   On-grid likes: {limits.on_grid_likes_count} (remaining {remaining['on_grid']})")
            print(f"   Off-grid likes: {limits.off_grid_likes_count} (remaining {remaining['off_grid']})")
            print(f"   Messages sent: {limits.messages_started_count}")
            print()

            signed = case(
                (CreditTransaction.direction == "credit", CreditTransaction.amount),
                else_=-CreditTransaction.amount,
            )
            ledger_sum = (
                await db.execute(select(func.coalesce(func.sum(signed), 0)).where(CreditTransaction.user_id == user.id))
            ).scalar_one()
            status = "OK" if ledger_sum == user.credit_balance else "MISMATCH"
            print(f"Credits: balance {user.credit_balance}, ledger sum {ledger_sum} [{status}]")

        except Exception as e:
            print(f"Check failed: {e}")


async def list_matches():
    """List all matches in the database."""

    async with AsyncSessionLocal() as db:
        try:
            result = await db.execute(select(Match).order_by(Match.matched_at))
            matches = result.scalars().all()

            if not matches:
                print("No matches in the database")
                return

            print(f"All matches ({len(matches)}):")
            for match in matches:
                print(f"   • #{match.id}: {match.user1_id} <-> {match.user2_id} ({match.matched_at})")

        except Exception as e:
            print(f"Listing matches failed: {e}")


async def main():
    if len(sys.argv) < 2:
        print("Usage:")
        print(f"  {sys.argv[0]} <email>      - show limits and credits for a user")
        print(f"  {sys.argv[0]} --matches    - list all matches")
        return

    command = sys.argv[1]

    if command == "--matches":
        await list_matches()
    else:
        await check_user(command)


if __name__ == "__main__":
    asyncio.run(main())
