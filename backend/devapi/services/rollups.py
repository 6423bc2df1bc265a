"""
Idempotent usage rollup job.

Copies today's ephemeral Redis counters into the durable
api_key_daily_usage table so usage history survives counter expiry.

IDEMPOTENCY:
  Uses INSERT … ON CONFLICT (key_id, date) DO UPDATE with the current
  snapshot values - an overwrite, never an increment. Running this twice
  for the same day with unchanged counters produces identical rows; running
  it while traffic is still incrementing is safe, and a later run simply
  records the fresher snapshot.

ISOLATION:
  Each key is read and upserted in its own session/transaction. One key's
  failure is logged and counted; the remaining keys are still processed.

SCHEDULING:
  Triggered by an external cron via POST /cron/usage-rollup, or manually
  with `python -m scripts.run_rollup`.
"""

import datetime
import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devapi.core.database import upsert_insert
from devapi.models.api_key import APIKey
from devapi.models.rollups import DailyUsage
from devapi.schemas.usage import RollupReport
from devapi.services.usage import UsageCounter

logger = logging.getLogger(__name__)


async def run_usage_rollup(
    session_factory: async_sessionmaker[AsyncSession],
    counter: UsageCounter,
    target_date: datetime.date | None = None,
) -> RollupReport:
    """
    Snapshot every key's counters for target_date into api_key_daily_usage.

    Args:
        session_factory: Builds one short-lived session per key.
        counter:         Reads the Redis counters.
        target_date:     UTC day to roll up (default: today).

    Raises:
        SQLAlchemyError: only if the key list itself cannot be read.
    """
    target_date = target_date or counter.today()
    logger.info("Running usage rollup for %s", target_date)

    async with session_factory() as session:
        key_ids = list((await session.execute(select(APIKey.id))).scalars().all())

    rows_written = 0
    failures = 0
    for key_id in key_ids:
        try:
            if await _rollup_key(session_factory, counter, key_id, target_date):
                rows_written += 1
        except Exception:
            failures += 1
            logger.exception("Usage rollup failed for key %s", key_id)

    logger.info(
        "Usage rollup for %s done ✓ keys=%d written=%d failures=%d",
        target_date, len(key_ids), rows_written, failures,
    )
    return RollupReport(
        ok=failures == 0,
        date=target_date,
        keys_seen=len(key_ids),
        rows_written=rows_written,
        failures=failures,
    )


async def _rollup_key(
    session_factory: async_sessionmaker[AsyncSession],
    counter: UsageCounter,
    key_id: uuid.UUID,
    target_date: datetime.date,
) -> bool:
    """Upsert one key's snapshot. Returns False when both counters are zero."""
    request_count, error_count = await counter.read_day_totals(key_id, target_date)
    if request_count == 0 and error_count == 0:
        return False

    async with session_factory() as session:
        upsert = upsert_insert(session, DailyUsage).values(
            key_id=key_id,
            date=target_date,
            request_count=request_count,
            error_count=error_count,
        ).on_conflict_do_update(
            index_elements=["key_id", "date"],
            set_={
                "request_count": request_count,
                "error_count": error_count,
                "updated_at": func.now(),
            },
        )
        await session.execute(upsert)
        await session.commit()
    return True
