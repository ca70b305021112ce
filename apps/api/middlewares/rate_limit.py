"""Per-IP rate limiting for unauthenticated endpoints."""

import logging

from fastapi import Request

from core.config import settings
from core.errors import RateLimitedError
from core.redis import hit_window

logger = logging.getLogger(__name__)


class RateLimit:
    """Fixed-window limiter backed by Redis, used as a route dependency."""

    def __init__(self, scope: str, limit: int = 10, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            scope: Key namespace (signup, login, ...)
            limit: Maximum requests per window
            window_seconds: Window length
        """
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request) -> None:
        if not settings.rate_limit_enabled:
            return

        client_ip = request.client.host if request.client else "unknown"
        try:
            hits, ttl = await hit_window(f"rl:{self.scope}:{client_ip}", self.window_seconds)
        except Exception as e:
            # Redis outage must not lock users out
            logger.error(f"Rate limiter unavailable for {self.scope}: {e}")
            return

        if hits > self.limit:
            logger.warning(f"Rate limit exceeded: scope={self.scope} ip={client_ip}")
            raise RateLimitedError("Too many requests, please try again later", retry_after_seconds=ttl)
