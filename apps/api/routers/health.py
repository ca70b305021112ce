"""Health check endpoints."""

from typing import Any

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_enricher, get_redis_client
from apps.persona.provider import PersonaEnricher

router = APIRouter()


@router.get("/")
async def health_check(enricher: PersonaEnricher = Depends(get_enricher)) -> dict[str, Any]:
    """Liveness plus the optional capabilities this process resolved at startup."""
    return {"status": "healthy", "ai_enrichment": enricher.available}


@router.get("/db")
async def health_check_db(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Database health check."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


@router.get("/redis")
async def health_check_redis(redis_client: redis.Redis = Depends(get_redis_client)) -> dict[str, str]:
    """Redis health check; real-time fan-out and rate limits depend on it."""
    try:
        await redis_client.ping()
        return {"status": "healthy", "redis": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "redis": "disconnected", "error": str(e)}
