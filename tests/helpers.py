"""Fakes and request helpers shared by the API tests."""

from __future__ import annotations

import itertools
from datetime import date
from typing import Any

from httpx import AsyncClient
from sqlalchemy import update

from apps.persona.provider import MatchNarrative, ParsedQuery, PersonaEnricher, PersonalityInsight
from apps.workers.notifier import Notification
from core.db import AsyncSessionLocal
from core.errors import EnrichmentUnavailable
from models import User

_emails = itertools.count(1)


class RecordingNotifier:
    """Collects dispatched events instead of delivering them."""

    def __init__(self) -> None:
        self.events: list[Notification] = []

    async def dispatch(self, events: list[Notification]) -> None:
        self.events.extend(events)

    def kinds_for(self, user_id: int) -> list[str]:
        return [e.kind for e in self.events if e.user_id == user_id]


class FakeEnricher(PersonaEnricher):
    """Scriptable enricher: each capability is off unless a result is set."""

    available = True

    def __init__(self) -> None:
        self.parsed: ParsedQuery | None = None
        self.narrative: MatchNarrative | None = None
        self.reason: str | None = None
        self.embedding: list[float] | None = None
        self.insight: PersonalityInsight | None = None
        self.selfie_age: int | None = None
        self.selfie_available = False
        self.narrate_calls = 0

    async def parse_query(self, query: str) -> ParsedQuery:
        if self.parsed is None:
            raise EnrichmentUnavailable("parse_query")
        return self.parsed

    async def narrate(self, seeker: str, candidate: str, score: int) -> MatchNarrative:
        self.narrate_calls += 1
        if self.narrative is None:
            raise EnrichmentUnavailable("narrate")
        return self.narrative

    async def explain_match(self, seeker: str, candidate: str, score: int) -> str:
        if self.reason is None:
            raise EnrichmentUnavailable("explain_match")
        return self.reason

    async def embed(self, text: str) -> list[float]:
        if self.embedding is None:
            raise EnrichmentUnavailable("embed")
        return self.embedding

    async def analyze_personality(self, answers: list[str], about: str) -> PersonalityInsight:
        if self.insight is None:
            raise EnrichmentUnavailable("analyze_personality")
        return self.insight

    async def check_selfie_age(self, image_url: str) -> int | None:
        if not self.selfie_available:
            raise EnrichmentUnavailable("check_selfie_age")
        return self.selfie_age


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def signup(client: AsyncClient, **overrides: Any) -> tuple[int, dict[str, str]]:
    """Create an account; returns (user_id, auth headers)."""
    n = next(_emails)
    body: dict[str, Any] = {
        "email": f"user{n}@example.com",
        "password": "correct-horse",
        "name": f"User {n}",
        "gender": "female",
        "interested_in": "male",
        "date_of_birth": date(1995, 6, 15).isoformat(),
        "city": "Austin",
        "latitude": 30.2672,
        "longitude": -97.7431,
    }
    body.update(overrides)
    resp = await client.post("/auth/signup", json=body)
    assert resp.status_code == 201, resp.text
    payload = resp.json()
    return payload["user"]["id"], auth(payload["token"])


async def signup_man(client: AsyncClient, **overrides: Any) -> tuple[int, dict[str, str]]:
    return await signup(client, **{"gender": "male", "interested_in": "female", **overrides})


async def complete_profile(client: AsyncClient, headers: dict[str, str], **fields: Any) -> dict[str, Any]:
    resp = await client.post("/profile/complete", json=fields, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


async def set_user(user_id: int, **values: Any) -> None:
    """Write user columns directly, for state the API cannot produce (time travel, balances)."""
    async with AsyncSessionLocal() as session:
        await session.execute(update(User).where(User.id == user_id).values(**values))
        await session.commit()


async def fetch(stmt: Any) -> list[Any]:
    async with AsyncSessionLocal() as session:
        return list((await session.execute(stmt)).all())


async def like(
    client: AsyncClient, headers: dict[str, str], target_id: int, *, on_grid: bool = True, superlike: bool = False
) -> Any:
    return await client.post(
        "/likes",
        json={"target_user_id": target_id, "is_on_grid": on_grid, "is_superlike": superlike},
        headers=headers,
    )


async def make_match(
    client: AsyncClient, a: tuple[int, dict[str, str]], b: tuple[int, dict[str, str]]
) -> int:
    assert (await like(client, a[1], b[0])).status_code == 200
    resp = await like(client, b[1], a[0])
    assert resp.status_code == 200, resp.text
    assert resp.json()["is_match"] is True
    return resp.json()["match_id"]


async def create_user(session: Any, **values: Any) -> User:
    """Insert a user straight through the ORM for engine-level tests."""
    n = next(_emails)
    fields: dict[str, Any] = {
        "email": f"engine{n}@example.com",
        "password_hash": "x$y",
        "name": f"Engine {n}",
        "gender": "female",
        "interested_in": "male",
        "date_of_birth": date(1994, 3, 1),
        "city": "Austin",
    }
    fields.update(values)
    user = User(**fields)
    session.add(user)
    await session.flush()
    return user
