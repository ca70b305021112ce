
import redis.asyncio as redis

from core.config import settings

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    global _redis_client
    if _redis_client is None:
        _redis_client = await redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


async def hit_window(key: str, window_seconds: int) -> tuple[int, int]:
    """
    Count one hit against a fixed window keyed by `key`.

    Returns:
        (hits in the current window, seconds until the window resets)
    """
    client = await get_redis()
    async with client.pipeline(transaction=True) as pipe:
        pipe.incr(key)
        pipe.ttl(key)
        hits, ttl = await pipe.execute()
    if ttl < 0:
        await client.expire(key, window_seconds)
        ttl = window_seconds
    return int(hits), int(ttl)


def user_channel(user_id: int) -> str:
    """Pub/sub channel carrying real-time events for one user."""
    return f"events:user:{user_id}"
