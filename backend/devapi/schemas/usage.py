"""
Pydantic v2 schemas for usage reporting and the rollup trigger.

  • UsageSummary  - GET /v1/usage and the developer portal charts.
  • RollupReport  - POST /cron/usage-rollup response.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel, Field


class HourlyCount(BaseModel):
    """Requests in one UTC hour of today."""

    hour: str = Field(..., examples=["09"], description="Two-digit UTC hour.")
    count: int = Field(..., ge=0)


class DailyCount(BaseModel):
    """Requests on one earlier UTC day, from the durable rollup."""

    date: datetime.date
    count: int = Field(..., ge=0)


class UsageSummary(BaseModel):
    """Usage of a single API key."""

    today_total: int = Field(..., ge=0, description="Requests so far today (UTC).")
    hourly_today: list[HourlyCount] = Field(
        default_factory=list,
        description="24 buckets, hour 00 first.",
    )
    daily_totals: list[DailyCount] = Field(
        default_factory=list,
        description="Previous days, oldest first.",
    )


class RollupReport(BaseModel):
    """Outcome of one rollup run. failures > 0 does not abort the run,
    but the run is only ok when every key was rolled up."""

    ok: bool
    date: datetime.date
    keys_seen: int
    rows_written: int
    failures: int
