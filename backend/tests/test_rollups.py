"""Tests for the idempotent usage rollup job."""

import datetime

from sqlalchemy import select

from devapi.models.rollups import DailyUsage
from devapi.services.api_keys import create_api_key, revoke_api_key
from devapi.services.rollups import run_usage_rollup
from devapi.services.usage import UsageCounter

UTC = datetime.timezone.utc
NOW = datetime.datetime(2026, 3, 10, 23, 55, tzinfo=UTC)
TODAY = NOW.date()


async def _rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(DailyUsage).order_by(DailyUsage.key_id)
        )
        return [
            (row.key_id, row.date, row.request_count, row.error_count)
            for row in result.scalars().all()
        ]


class FlakyCounter(UsageCounter):
    """Fails reads for one key id, delegates the rest."""

    def __init__(self, redis, failing_key_id, **kwargs):
        super().__init__(redis, **kwargs)
        self._failing_key_id = failing_key_id

    async def read_day_totals(self, key_id, day):
        if key_id == self._failing_key_id:
            raise RuntimeError("boom")
        return await super().read_day_totals(key_id, day)


class TestUsageRollup:

    async def test_snapshots_counters(self, session_factory, redis, issued_key):
        counter = UsageCounter(redis, clock=lambda: NOW)
        for _ in range(5):
            await counter.record_request(issued_key.key_id)
        await counter.record_error(issued_key.key_id)

        report = await run_usage_rollup(session_factory, counter)

        assert report.ok is True
        assert report.date == TODAY
        assert report.keys_seen == 1
        assert report.rows_written == 1
        assert report.failures == 0
        assert await _rows(session_factory) == [(issued_key.key_id, TODAY, 5, 1)]

    async def test_idempotent(self, session_factory, redis, issued_key):
        counter = UsageCounter(redis, clock=lambda: NOW)
        for _ in range(3):
            await counter.record_request(issued_key.key_id)

        await run_usage_rollup(session_factory, counter)
        first = await _rows(session_factory)
        await run_usage_rollup(session_factory, counter)
        second = await _rows(session_factory)

        assert first == second == [(issued_key.key_id, TODAY, 3, 0)]

    async def test_rerun_overwrites_with_fresher_snapshot(self, session_factory, redis, issued_key):
        counter = UsageCounter(redis, clock=lambda: NOW)
        await counter.record_request(issued_key.key_id)
        await run_usage_rollup(session_factory, counter)

        await counter.record_request(issued_key.key_id)
        await run_usage_rollup(session_factory, counter)

        assert await _rows(session_factory) == [(issued_key.key_id, TODAY, 2, 0)]

    async def test_idle_keys_are_skipped(self, session_factory, redis, issued_key):
        counter = UsageCounter(redis, clock=lambda: NOW)

        report = await run_usage_rollup(session_factory, counter)

        assert report.keys_seen == 1
        assert report.rows_written == 0
        assert await _rows(session_factory) == []

    async def test_explicit_target_date(self, session_factory, redis, issued_key):
        yesterday = TODAY - datetime.timedelta(days=1)
        earlier = UsageCounter(redis, clock=lambda: NOW - datetime.timedelta(days=1))
        await earlier.record_request(issued_key.key_id)

        report = await run_usage_rollup(
            session_factory, UsageCounter(redis, clock=lambda: NOW), yesterday,
        )

        assert report.date == yesterday
        assert await _rows(session_factory) == [(issued_key.key_id, yesterday, 1, 0)]

    async def test_one_failing_key_does_not_stop_the_batch(self, session_factory, redis, owner_id):
        async with session_factory() as session:
            good = await create_api_key(session, owner_id, "Good")
            bad = await create_api_key(session, owner_id, "Bad")

        writer = UsageCounter(redis, clock=lambda: NOW)
        await writer.record_request(good.key_id)
        await writer.record_request(bad.key_id)

        counter = FlakyCounter(redis, bad.key_id, clock=lambda: NOW)
        report = await run_usage_rollup(session_factory, counter)

        assert report.keys_seen == 2
        assert report.rows_written == 1
        assert report.failures == 1
        assert report.ok is False
        assert await _rows(session_factory) == [(good.key_id, TODAY, 1, 0)]

    async def test_revoked_keys_are_rolled_up(self, session_factory, redis, owner_id):
        async with session_factory() as session:
            issued = await create_api_key(session, owner_id, "Old")
        counter = UsageCounter(redis, clock=lambda: NOW)
        await counter.record_request(issued.key_id)
        async with session_factory() as session:
            await revoke_api_key(session, owner_id, issued.key_id)

        report = await run_usage_rollup(session_factory, counter)

        assert report.rows_written == 1

    async def test_redis_outage_is_not_ok(self, session_factory, redis, redis_server, issued_key):
        redis_server.connected = False

        report = await run_usage_rollup(session_factory, UsageCounter(redis, clock=lambda: NOW))

        assert report.keys_seen == 1
        assert report.failures == 1
        assert report.ok is False
