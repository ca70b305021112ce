"""Notification service: Expo push delivery and real-time fan-out over Redis."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy import select

from core.config import settings
from core.db import AsyncSessionLocal
from core.metrics import notifications_total
from core.redis import get_redis, user_channel
from models import User

logger = logging.getLogger(__name__)

PUSH_TITLES = {
    "like_received": "Someone likes you",
    "match_created": "It's a match!",
    "compliment_received": "You received a compliment",
    "message_received": "New message",
}


@dataclass
class Notification:
    """One event addressed to one user."""

    user_id: int
    kind: str  # like_received, match_created, compliment_received, message_received
    payload: dict[str, Any] = field(default_factory=dict)


class Notifier:
    """Service for delivering notifications to users."""

    def __init__(self) -> None:
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(5.0))

    async def notify(self, user_id: int, kind: str, payload: dict[str, Any] | None = None) -> bool:
        """
        Deliver one event to a user over every enabled channel.

        Failures are logged and counted, never raised.

        Args:
            user_id: Recipient
            kind: Event kind
            payload: Event body, JSON-serializable

        Returns:
            True if at least one channel accepted the event
        """
        payload = payload or {}
        delivered = False

        if settings.realtime_enabled:
            delivered = await self._publish(user_id, kind, payload) or delivered

        if settings.push_enabled:
            delivered = await self._push(user_id, kind, payload) or delivered

        notifications_total.labels(kind=kind, outcome="delivered" if delivered else "dropped").inc()
        return delivered

    async def dispatch(self, events: list[Notification]) -> None:
        """Deliver a batch of events; used as a post-response background task."""
        for event in events:
            await self.notify(event.user_id, event.kind, event.payload)

    async def _publish(self, user_id: int, kind: str, payload: dict[str, Any]) -> bool:
        try:
            redis_client = await get_redis()
            message = json.dumps({"type": kind, "data": payload}, default=str)
            await redis_client.publish(user_channel(user_id), message)
            return True
        except Exception as e:
            logger.error(f"Failed to publish {kind} event to user {user_id}: {e}")
            return False

    async def _push(self, user_id: int, kind: str, payload: dict[str, Any]) -> bool:
        try:
            async with AsyncSessionLocal() as db:
                token = (await db.execute(select(User.push_token).where(User.id == user_id))).scalar_one_or_none()

            if not token:
                return False

            response = await self.client.post(
                settings.expo_push_url,
                json={
                    "to": token,
                    "title": PUSH_TITLES.get(kind, "Notification"),
                    "body": payload.get("preview") or PUSH_TITLES.get(kind, ""),
                    "data": {"type": kind, **payload},
                    "sound": "default",
                },
            )
            response.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"Failed to send {kind} push to user {user_id}: {e}")
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


# Global notifier instance
notifier = Notifier()


def get_notifier() -> Notifier:
    """FastAPI dependency returning the process-wide notifier."""
    return notifier
