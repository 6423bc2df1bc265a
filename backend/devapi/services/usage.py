"""
Usage metering (Usage Counter) and usage summaries (Usage Reporter).

Counters live in Redis with a TTL so storage stays bounded:

  usage:{key_id}:{YYYYMMDD}          daily requests   32 days
  usage:{key_id}:{YYYYMMDD}:{HH}     hourly requests  48 hours
  usage:{key_id}:{YYYYMMDD}:errors   daily errors     32 days

All dates/hours are UTC. The rollup job reads the daily counters.

WRITE SIDE:
  Metering is best-effort. record_request / record_error / touch_last_used
  never raise; failures are logged and dropped.

READ SIDE:
  Today comes from Redis (fresh). Earlier days come from the durable
  api_key_daily_usage rollup, since their Redis counters may be gone.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devapi.auth.errors import StoreUnavailable
from devapi.models.api_key import APIKey
from devapi.models.rollups import DailyUsage
from devapi.schemas.usage import DailyCount, HourlyCount, UsageSummary

logger = logging.getLogger(__name__)

USAGE_PREFIX = "usage"
DAILY_TTL_SECONDS = 32 * 24 * 60 * 60
HOURLY_TTL_SECONDS = 48 * 60 * 60


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def date_key(day: datetime.date) -> str:
    return day.strftime("%Y%m%d")


def daily_counter_key(key_id: uuid.UUID | str, day: datetime.date) -> str:
    return f"{USAGE_PREFIX}:{key_id}:{date_key(day)}"


def hourly_counter_key(key_id: uuid.UUID | str, day: datetime.date, hour: int) -> str:
    return f"{USAGE_PREFIX}:{key_id}:{date_key(day)}:{hour:02d}"


def error_counter_key(key_id: uuid.UUID | str, day: datetime.date) -> str:
    return f"{USAGE_PREFIX}:{key_id}:{date_key(day)}:errors"


def _as_int(value: str | None) -> int:
    return int(value) if value is not None else 0


class UsageCounter:
    """Ephemeral per-key counters in Redis."""

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._redis = redis
        self._clock = clock

    def today(self) -> datetime.date:
        return self._clock().date()

    # ── Write side (never raises) ───────────────────────────
    async def record_request(self, key_id: uuid.UUID | str) -> None:
        now = self._clock()
        daily = daily_counter_key(key_id, now.date())
        hourly = hourly_counter_key(key_id, now.date(), now.hour)
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.incr(daily)
                pipe.expire(daily, DAILY_TTL_SECONDS)
                pipe.incr(hourly)
                pipe.expire(hourly, HOURLY_TTL_SECONDS)
                await pipe.execute()
        except Exception:
            logger.exception("Usage increment failed for key %s", key_id)

    async def record_error(self, key_id: uuid.UUID | str) -> None:
        key = error_counter_key(key_id, self.today())
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.incr(key)
                pipe.expire(key, DAILY_TTL_SECONDS)
                await pipe.execute()
        except Exception:
            logger.exception("Error-count increment failed for key %s", key_id)

    # ── Read side (raises StoreUnavailable) ─────────────────
    async def read_day_totals(
        self,
        key_id: uuid.UUID | str,
        day: datetime.date,
    ) -> tuple[int, int]:
        """(request_count, error_count) for one day; 0 for missing counters."""
        try:
            requests, errors = await self._redis.mget(
                daily_counter_key(key_id, day),
                error_counter_key(key_id, day),
            )
        except RedisError as exc:
            raise StoreUnavailable("usage store") from exc
        return _as_int(requests), _as_int(errors)

    async def read_hourly(
        self,
        key_id: uuid.UUID | str,
        day: datetime.date,
    ) -> list[int]:
        """24 hourly request counts for one day, hour 00 first."""
        keys = [hourly_counter_key(key_id, day, hour) for hour in range(24)]
        try:
            values = await self._redis.mget(keys)
        except RedisError as exc:
            raise StoreUnavailable("usage store") from exc
        return [_as_int(v) for v in values]


async def touch_last_used(
    session_factory: async_sessionmaker[AsyncSession],
    key_id: uuid.UUID,
) -> None:
    """Best-effort api_keys.last_used_at = now. Never raises."""
    try:
        async with session_factory() as session:
            await session.execute(
                update(APIKey)
                .where(APIKey.id == key_id)
                .values(last_used_at=_utcnow())
            )
            await session.commit()
    except Exception:
        logger.exception("last_used_at update failed for key %s", key_id)


async def record_successful_request(
    counter: UsageCounter,
    session_factory: async_sessionmaker[AsyncSession],
    key_id: uuid.UUID,
) -> None:
    """Post-response metering for one allowed request."""
    await counter.record_request(key_id)
    await touch_last_used(session_factory, key_id)


# ── Reporter ────────────────────────────────────────────────
async def get_usage_for_key(
    session: AsyncSession,
    counter: UsageCounter,
    key_id: uuid.UUID,
    *,
    days: int = 7,
) -> UsageSummary:
    """
    Compose the usage summary shown in the portal and on GET /v1/usage.

    today_total + hourly_today - live Redis counters
    daily_totals               - the `days - 1` days before today from the
                                 durable rollup, oldest first, zero-filled
    """
    today = counter.today()

    today_total, _ = await counter.read_day_totals(key_id, today)
    hourly = await counter.read_hourly(key_id, today)

    first_day = today - datetime.timedelta(days=max(days - 1, 0))
    stmt = select(DailyUsage.date, DailyUsage.request_count).where(
        DailyUsage.key_id == key_id,
        DailyUsage.date >= first_day,
        DailyUsage.date < today,
    )
    rows = (await session.execute(stmt)).all()
    by_date = {row.date: row.request_count for row in rows}

    daily_totals = []
    for offset in range(days - 1, 0, -1):
        day = today - datetime.timedelta(days=offset)
        daily_totals.append(DailyCount(date=day, count=by_date.get(day, 0)))

    return UsageSummary(
        today_total=today_total,
        hourly_today=[
            HourlyCount(hour=f"{hour:02d}", count=count)
            for hour, count in enumerate(hourly)
        ],
        daily_totals=daily_totals,
    )
