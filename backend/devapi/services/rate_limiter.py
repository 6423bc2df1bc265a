"""
Redis-backed sliding-window rate limiter.

Each API key owns a sorted set `ratelimit:{key_id}` whose members are
individual requests scored by their timestamp (ms). A request is allowed
when, after pruning everything older than the window, the set holds at most
`limit` members - including itself.

Behaviour:
  • The window slides with the clock; there is no minute boundary to
    burst across.
  • Prune, add, count and read-oldest run in one MULTI/EXEC
    transaction. Concurrent requests for one key, from any instance,
    never exceed the budget together.
  • A rejected request removes its own member, so 429s don't consume
    budget.
  • Redis errors are wrapped into StoreUnavailable (fail closed → 503).
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from devapi.auth.errors import StoreUnavailable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
MIN_RPM = 1
MAX_RPM = 1000

_KEY_PREFIX = "ratelimit"


def clamp_rpm(rate_limit_rpm: int | None) -> int:
    """Clamp a configured budget into [MIN_RPM, MAX_RPM]. None → default 60."""
    if rate_limit_rpm is None:
        rate_limit_rpm = 60
    return max(MIN_RPM, min(MAX_RPM, int(rate_limit_rpm)))


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int  # seconds; 0 when allowed


class SlidingWindowRateLimiter:
    """Per-key request budget over a rolling window."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        window_seconds: int = WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._window_ms = window_seconds * 1000
        self._clock = clock

    @staticmethod
    def bucket_key(key_id: uuid.UUID | str) -> str:
        return f"{_KEY_PREFIX}:{key_id}"

    async def hit(self, key_id: uuid.UUID | str, limit_rpm: int) -> RateLimitDecision:
        """
        Count one request against key_id and decide.

        Raises StoreUnavailable if Redis cannot be reached.
        """
        limit = clamp_rpm(limit_rpm)
        key = self.bucket_key(key_id)
        now_ms = int(self._clock() * 1000)
        member = f"{now_ms}:{uuid.uuid4().hex}"

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(key, "-inf", now_ms - self._window_ms)
                pipe.zadd(key, {member: now_ms})
                pipe.zcard(key)
                pipe.zrange(key, 0, 0, withscores=True)
                pipe.pexpire(key, self._window_ms)
                _, _, count, oldest, _ = await pipe.execute()

            if count <= limit:
                return RateLimitDecision(
                    allowed=True,
                    limit=limit,
                    remaining=limit - count,
                    retry_after=0,
                )

            await self._redis.zrem(key, member)
        except RedisError as exc:
            logger.error("Rate limit store error: %s", exc.__class__.__name__)
            raise StoreUnavailable("rate limit store") from exc

        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        retry_after = max(1, math.ceil((oldest_ms + self._window_ms - now_ms) / 1000))
        return RateLimitDecision(
            allowed=False,
            limit=limit,
            remaining=0,
            retry_after=retry_after,
        )
