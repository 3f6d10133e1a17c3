"""
Rate Limiting Module

Sliding-window rate limiting for API endpoints using Redis as the backend.
Falls back to in-memory storage if Redis is unavailable.

The overdue sweep trigger is rate limited so a misconfigured scheduler
cannot hammer the database or flood borrowers with reminders.
"""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis

from app.core.redis import get_redis

logger = logging.getLogger(__name__)

# In-memory rate limit storage (fallback when Redis unavailable)
# Format: {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(
    client: Redis,
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using a Redis sorted set per key.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using in-memory storage.

    Only accurate for a single server process.
    """
    now = time.time()
    window_start = now - window_seconds

    hits = [ts for ts in _memory_store.get(key, []) if ts > window_start]

    if len(hits) >= limit:
        _memory_store[key] = hits
        return False

    hits.append(now)
    _memory_store[key] = hits
    return True


async def check_rate_limit(
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check if a request is within rate limits.

    Uses the shared Redis client when it is connected, otherwise memory.

    Args:
        key: Unique key for this rate limit (e.g., "rate_limit:10.0.0.1:/path")
        limit: Maximum requests allowed in the window
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    redis_client = await get_redis()

    if redis_client is not None:
        try:
            return await _check_rate_limit_redis(redis_client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def client_path_key(request: Request) -> str:
    """Default rate limit key: client IP + endpoint path."""
    client_ip = request.client.host if request.client else "unknown"
    return f"rate_limit:{client_ip}:{request.url.path}"


def rate_limit(
    limit: int | Callable[[], int] = 10,
    window_seconds: int | Callable[[], int] = 60,
    key_func: Callable[[Request], str] = client_path_key,
):
    """
    Rate limiting decorator for FastAPI endpoints.

    The decorated endpoint must accept a ``request: Request`` parameter.
    ``limit`` and ``window_seconds`` may be callables so they are read from
    settings at request time.

    Usage:
        @router.post("/check-overdue-books")
        @rate_limit(limit=10, window_seconds=60)
        async def check_overdue_books(request: Request, ...):
            ...

    Raises:
        RateLimitExceeded: When rate limit is exceeded (HTTP 429)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request: Request | None = kwargs.get("request")
            if request is None:
                request = next((arg for arg in args if isinstance(arg, Request)), None)

            if request is None:
                logger.warning(
                    f"Rate limit decorator on {func.__name__} couldn't find Request object"
                )
                return await func(*args, **kwargs)

            max_requests = limit() if callable(limit) else limit
            window = window_seconds() if callable(window_seconds) else window_seconds
            key = key_func(request)

            allowed = await check_rate_limit(key, max_requests, window)

            if not allowed:
                logger.warning(f"Rate limit exceeded for {key}: {max_requests}/{window}s")
                raise RateLimitExceeded(max_requests, window)

            return await func(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "rate_limit",
    "check_rate_limit",
    "client_path_key",
    "RateLimitExceeded",
]
