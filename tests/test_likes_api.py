from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from apps.engine.likes import LikeMatchStateMachine
from core.clock import utcnow
from core.config import GenderQuota
from core.db import AsyncSessionLocal
from helpers import fetch, like, make_match, set_user, signup, signup_man
from models import ActivityLimits, Like, Match


@pytest.mark.asyncio
async def test_reciprocal_like_creates_single_match(client, notifier):
    woman = await signup(client)
    man = await signup_man(client)

    first = await like(client, woman[1], man[0])
    assert first.status_code == 200, first.text
    assert first.json()["is_match"] is False
    assert first.json()["match_id"] is None
    assert first.json()["likes_remaining"] == {"on_grid": 2, "off_grid": 7}

    second = await like(client, man[1], woman[0])
    assert second.status_code == 200, second.text
    body = second.json()
    assert body["is_match"] is True
    assert body["match_id"] is not None
    assert body["likes_remaining"] == {"on_grid": 0, "off_grid": 4}

    for user_id, headers in (woman, man):
        matches = (await client.get("/matches", headers=headers)).json()["matches"]
        assert len(matches) == 1
        assert matches[0]["match_id"] == body["match_id"]
        assert matches[0]["user"]["id"] != user_id

    [(match,)] = await fetch(select(Match))
    assert (match.user1_id, match.user2_id) == (min(woman[0], man[0]), max(woman[0], man[0]))

    assert notifier.kinds_for(man[0]) == ["like_received", "match_created"]
    assert notifier.kinds_for(woman[0]) == ["match_created"]


@pytest.mark.asyncio
async def test_match_creation_is_idempotent_for_the_pair(client, policy):
    a = await signup(client)
    b = await signup_man(client)

    async with AsyncSessionLocal() as db:
        machine = LikeMatchStateMachine(db, policy)
        first_id, created = await machine.create_match(a[0], b[0])
        second_id, created_again = await machine.create_match(b[0], a[0])
        await db.commit()

    assert created is True
    assert created_again is False
    assert first_id == second_id
    assert (await fetch(select(func.count(Match.id))))[0][0] == 1


@pytest.mark.asyncio
async def test_duplicate_like_is_rejected(client):
    woman = await signup(client)
    man = await signup_man(client)

    assert (await like(client, woman[1], man[0])).status_code == 200
    again = await like(client, woman[1], man[0], on_grid=False)
    assert again.status_code == 400
    assert "already liked" in again.json()["error"]

    remaining = (await client.get("/likes/remaining", headers=woman[1])).json()
    assert remaining["off_grid_remaining"] == 7


@pytest.mark.asyncio
async def test_self_like_and_unknown_target(client):
    user_id, headers = await signup(client)
    assert (await like(client, headers, user_id)).status_code == 400
    assert (await like(client, headers, 999999)).status_code == 404


@pytest.mark.asyncio
async def test_banned_target_is_not_found(client):
    woman = await signup(client)
    man = await signup_man(client)
    await set_user(man[0], is_banned=True)
    assert (await like(client, woman[1], man[0])).status_code == 404


@pytest.mark.asyncio
async def test_male_on_grid_quota_returns_429_with_reset_horizon(client):
    man = await signup_man(client)
    first = await signup(client)
    second = await signup(client)

    assert (await like(client, man[1], first[0])).status_code == 200
    resp = await like(client, man[1], second[0])
    assert resp.status_code == 429
    body = resp.json()
    assert body["kind"] == "on_grid"
    assert body["limit"] == 1
    assert 0 < body["reset_in_hours"] <= 12

    # Off-grid has its own allowance
    assert (await like(client, man[1], second[0], on_grid=False)).status_code == 200


@pytest.mark.asyncio
async def test_quota_resets_after_window(client):
    man = await signup_man(client)
    first = await signup(client)
    second = await signup(client)

    assert (await like(client, man[1], first[0])).status_code == 200
    assert (await like(client, man[1], second[0])).status_code == 429

    async with AsyncSessionLocal() as db:
        await db.execute(
            update(ActivityLimits)
            .where(ActivityLimits.user_id == man[0])
            .values(last_reset_at=utcnow() - timedelta(hours=13))
        )
        await db.commit()

    assert (await like(client, man[1], second[0])).status_code == 200


@pytest.mark.asyncio
async def test_premium_liker_is_not_quota_limited(client):
    man = await signup_man(client)
    await set_user(man[0], is_premium=True)
    for _ in range(3):
        target = await signup(client)
        assert (await like(client, man[1], target[0])).status_code == 200


@pytest.mark.asyncio
async def test_superlike_without_credits_changes_nothing(client):
    woman = await signup(client)
    man = await signup_man(client)
    await set_user(woman[0], credit_balance=3)

    resp = await like(client, woman[1], man[0], superlike=True)
    assert resp.status_code == 402
    assert resp.json()["required"] == 5
    assert resp.json()["credit_balance"] == 3

    wallet = (await client.get("/wallet", headers=woman[1])).json()
    assert wallet["credit_balance"] == 3
    assert wallet["transactions"] == []
    assert await fetch(select(Like)) == []
    remaining = (await client.get("/likes/remaining", headers=woman[1])).json()
    assert remaining["on_grid_remaining"] == 3


@pytest.mark.asyncio
async def test_superlike_debits_five_credits(client):
    woman = await signup(client)
    man = await signup_man(client)
    await set_user(woman[0], credit_balance=12)

    resp = await like(client, woman[1], man[0], superlike=True)
    assert resp.status_code == 200
    assert resp.json()["credit_balance"] == 7

    [(stored,)] = await fetch(select(Like))
    assert stored.is_superlike is True


@pytest.mark.asyncio
async def test_target_in_cooldown_blocks_only_non_premium(client):
    woman = await signup(client)
    await set_user(woman[0], cooldown_until=utcnow() + timedelta(hours=5))
    regular = await signup_man(client)
    premium = await signup_man(client)
    await set_user(premium[0], is_premium=True)

    rejected = await like(client, regular[1], woman[0])
    assert rejected.status_code == 400
    assert rejected.json()["can_bookmark"] is True

    assert (await like(client, premium[1], woman[0])).status_code == 200


@pytest.mark.asyncio
async def test_spending_combined_quota_starts_cooldown(client, policy):
    policy.female = GenderQuota(
        on_grid_likes=1,
        off_grid_likes=1,
        on_grid_results=6,
        off_grid_results=4,
        messages_per_day=10,
        cooldown_enabled_default=True,
    )
    woman = await signup(client)
    first = await signup_man(client)
    second = await signup_man(client)

    assert "cooldown_until" not in (await like(client, woman[1], first[0])).json()
    resp = await like(client, woman[1], second[0], on_grid=False)
    assert resp.status_code == 200
    assert "cooldown_until" in resp.json()

    # Nobody without premium can like her now
    third = await signup_man(client)
    assert (await like(client, third[1], woman[0])).status_code == 400


@pytest.mark.asyncio
async def test_unmatch_removes_match_and_likes_so_pair_can_rematch(client):
    woman = await signup(client)
    man = await signup_man(client)
    match_id = await make_match(client, woman, man)

    outsider = await signup_man(client)
    assert (await client.post(f"/matches/{match_id}/unmatch", headers=outsider[1])).status_code == 404

    resp = await client.post(f"/matches/{match_id}/unmatch", headers=woman[1])
    assert resp.status_code == 200
    assert (await client.get("/matches", headers=man[1])).json()["matches"] == []
    assert await fetch(select(Like)) == []

    await set_user(man[0], is_premium=True)
    await set_user(woman[0], is_premium=True)
    await make_match(client, woman, man)
    assert len((await client.get("/matches", headers=woman[1])).json()["matches"]) == 1


@pytest.mark.asyncio
async def test_likes_inbox_orders_compliments_and_superlikes_first(client):
    woman = await signup(client)
    plain = await signup_man(client)
    super_ = await signup_man(client)
    complimenter = await signup_man(client)
    matched = await signup_man(client)
    await set_user(super_[0], credit_balance=5)
    await set_user(complimenter[0], credit_balance=5)

    assert (await like(client, plain[1], woman[0], on_grid=False)).status_code == 200
    assert (await like(client, super_[1], woman[0], on_grid=False, superlike=True)).status_code == 200
    resp = await client.post(
        "/likes/compliment", json={"target_user_id": woman[0], "message": "Great taste in books"}, headers=complimenter[1]
    )
    assert resp.status_code == 200, resp.text
    await make_match(client, matched, woman)

    inbox = (await client.get("/likes/received", headers=woman[1])).json()["likes"]
    assert [entry["user"]["id"] for entry in inbox] == [complimenter[0], super_[0], plain[0]]
    assert inbox[0]["compliment_message"] == "Great taste in books"


@pytest.mark.asyncio
async def test_compliment_requires_credits_and_writes_nothing_otherwise(client):
    woman = await signup(client)
    man = await signup_man(client)

    resp = await client.post("/likes/compliment", json={"target_user_id": woman[0], "message": "Hi"}, headers=man[1])
    assert resp.status_code == 402
    assert await fetch(select(Like)) == []


@pytest.mark.asyncio
async def test_compliment_upgrades_existing_like_and_can_match(client, notifier):
    woman = await signup(client)
    man = await signup_man(client)
    await set_user(man[0], credit_balance=6)

    assert (await like(client, man[1], woman[0], on_grid=False)).status_code == 200
    assert (await like(client, woman[1], man[0])).json()["is_match"] is True

    resp = await client.post(
        "/likes/compliment", json={"target_user_id": woman[0], "message": "Love your hiking photos"}, headers=man[1]
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["credit_balance"] == 1
    assert body["is_match"] is True

    likes = [row[0] for row in await fetch(select(Like).where(Like.liker_id == man[0]))]
    assert len(likes) == 1
    assert likes[0].is_compliment is True
    assert likes[0].is_on_grid is False
    assert "compliment_received" in notifier.kinds_for(woman[0])


@pytest.mark.asyncio
async def test_remaining_endpoint_reports_gendered_message_allowance(client):
    man = await signup_man(client)
    woman = await signup(client)

    man_view = (await client.get("/likes/remaining", headers=man[1])).json()
    assert man_view == {
        "on_grid_remaining": 1,
        "off_grid_remaining": 4,
        "messages_remaining": 3,
        "is_premium": False,
        "reset_in_hours": 12,
    }
    assert (await client.get("/likes/remaining", headers=woman[1])).json()["messages_remaining"] == 10

    await set_user(man[0], is_premium=True)
    assert (await client.get("/likes/remaining", headers=man[1])).json()["messages_remaining"] is None
