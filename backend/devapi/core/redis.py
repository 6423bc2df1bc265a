"""
Redis client construction.

Redis backs the two latency-critical ephemeral stores: the sliding-window
rate limiter and the usage counters. Socket timeouts are short so a slow
Redis fails the request fast (503) instead of hanging it.
"""

import redis.asyncio as aioredis

from devapi.core.config import Settings


def build_redis(settings: Settings) -> aioredis.Redis:
    """Create the process-wide Redis client (lazy - connects on first command)."""
    return aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )
