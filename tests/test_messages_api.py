from datetime import timedelta

import pytest
from sqlalchemy import update

from core.clock import utcnow
from core.db import AsyncSessionLocal
from helpers import make_match, set_user, signup, signup_man
from models import Message


async def send(client, headers, match_id, content="hello", message_type="text"):
    return await client.post(
        "/messages", json={"match_id": match_id, "content": content, "message_type": message_type}, headers=headers
    )


@pytest.mark.asyncio
async def test_male_sender_capped_at_three_messages(client):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)

    for expected_remaining in (2, 1, 0):
        resp = await send(client, man[1], match_id)
        assert resp.status_code == 200, resp.text
        assert resp.json()["messages_remaining"] == expected_remaining

    resp = await send(client, man[1], match_id)
    assert resp.status_code == 429
    assert resp.json()["limit"] == 3
    assert resp.json()["kind"] == "messages"

    # The recipient is not affected by the sender's cap
    for expected_remaining in (9, 8, 7, 6):
        resp = await send(client, woman[1], match_id)
        assert resp.status_code == 200
        assert resp.json()["messages_remaining"] == expected_remaining


@pytest.mark.asyncio
async def test_female_sender_capped_at_ten_messages(client):
    woman = await signup(client)
    man = await signup_man(client)
    match_id = await make_match(client, woman, man)

    statuses = [(await send(client, woman[1], match_id)).status_code for _ in range(10)]
    assert statuses == [200] * 10

    resp = await send(client, woman[1], match_id)
    assert resp.status_code == 429
    assert resp.json()["kind"] == "messages"
    assert resp.json()["limit"] == 10

    remaining = (await client.get("/likes/remaining", headers=woman[1])).json()
    assert remaining["messages_remaining"] == 0


@pytest.mark.asyncio
async def test_premium_male_sender_is_not_capped(client):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)
    await set_user(man[0], is_premium=True)

    for _ in range(5):
        resp = await send(client, man[1], match_id)
        assert resp.status_code == 200
        assert resp.json()["messages_remaining"] is None


@pytest.mark.asyncio
async def test_only_participants_can_send(client):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)
    outsider = await signup(client)

    assert (await send(client, outsider[1], match_id)).status_code == 404
    assert (await send(client, man[1], 987654)).status_code == 404


@pytest.mark.asyncio
async def test_invalid_payloads_are_rejected(client):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)

    assert (await send(client, man[1], match_id, content="   ")).status_code == 400
    assert (await send(client, man[1], match_id, message_type="sticker")).status_code == 400
    assert (await send(client, man[1], match_id, content="x" * 2001)).status_code == 400

    # Rejections do not consume the allowance
    assert (await send(client, man[1], match_id)).json()["messages_remaining"] == 2


@pytest.mark.asyncio
async def test_history_is_oldest_first_and_marks_read(client, notifier):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)

    await send(client, man[1], match_id, "first")
    await send(client, man[1], match_id, "second")
    assert notifier.kinds_for(woman[0]).count("message_received") == 2

    [conversation] = (await client.get("/messages/conversations", headers=woman[1])).json()["conversations"]
    assert conversation["match_id"] == match_id
    assert conversation["unread_count"] == 2
    assert conversation["last_message"]["content"] == "second"

    resp = await client.get(f"/messages/{match_id}", headers=woman[1])
    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()["messages"]] == ["first", "second"]

    [conversation] = (await client.get("/messages/conversations", headers=woman[1])).json()["conversations"]
    assert conversation["unread_count"] == 0

    matches = (await client.get("/matches", headers=man[1])).json()["matches"]
    assert matches[0]["last_message_at"] is not None


@pytest.mark.asyncio
async def test_history_requires_participation(client):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)
    outsider = await signup(client)

    assert (await client.get(f"/messages/{match_id}", headers=outsider[1])).status_code == 404


@pytest.mark.asyncio
async def test_delete_only_own_message_within_window(client):
    man = await signup_man(client)
    woman = await signup(client)
    match_id = await make_match(client, man, woman)

    recent = (await send(client, woman[1], match_id, "oops")).json()["message"]["id"]
    old = (await send(client, woman[1], match_id, "long ago")).json()["message"]["id"]
    async with AsyncSessionLocal() as db:
        await db.execute(update(Message).where(Message.id == old).values(created_at=utcnow() - timedelta(minutes=6)))
        await db.commit()

    assert (await client.delete(f"/messages/item/{recent}", headers=man[1])).status_code == 403
    assert (await client.delete(f"/messages/item/{old}", headers=woman[1])).status_code == 400
    assert (await client.delete(f"/messages/item/{recent}", headers=woman[1])).status_code == 200
    assert (await client.delete(f"/messages/item/{recent}", headers=woman[1])).status_code == 404

    history = (await client.get(f"/messages/{match_id}", headers=man[1])).json()["messages"]
    assert [m["content"] for m in history] == ["long ago"]
