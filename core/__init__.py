"""Core modules for the application."""

from core.config import policy, settings
from core.db import Base, engine, get_db
from core.redis import close_redis, get_redis

__all__ = ["settings", "policy", "Base", "get_db", "engine", "get_redis", "close_redis"]
