"""
Redis Configuration

Shared async Redis client, used by the rate limiter.
"""

from redis.asyncio import Redis, from_url

from app.core.config import settings

# Redis client instance
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Initialize the Redis connection.

    Call this on application startup.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


async def get_redis() -> Redis | None:
    """
    Get the Redis client instance.

    Returns None if Redis is not available; callers fall back to local state.
    """
    return redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
