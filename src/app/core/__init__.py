"""
Core module - Configuration, database, Redis, scheduling and request guards.
"""

from app.core.config import get_settings, settings
from app.core.database import Base, close_db, get_db, init_db
from app.core.redis import close_redis, get_redis, init_redis

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
]
