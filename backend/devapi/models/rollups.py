"""
SQLAlchemy model for the durable daily usage rollup.

Rows are derived from the ephemeral Redis counters by the rollup job.
The Redis counters expire; this table is what the portal reads for any
day before today.

Design notes:
  • Composite primary key (key_id, date) encodes the rollup dimensions,
    making INSERT … ON CONFLICT idempotent by construction.
  • Upserts OVERWRITE with the latest snapshot - they never increment:
    so re-running the job for the same day converges.
  • updated_at tracks when the rollup was last refreshed.
"""

import datetime
import uuid

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from devapi.core.database import Base


class DailyUsage(Base):
    """
    Per-key request and error totals for one UTC calendar day.

    PK: (key_id, date)
    """

    __tablename__ = "api_key_daily_usage"

    key_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("api_keys.id"),
        primary_key=True,
    )
    date: Mapped[datetime.date] = mapped_column(
        Date, primary_key=True,
    )
    request_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    error_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyUsage key={self.key_id!s:.8} date={self.date} "
            f"requests={self.request_count} errors={self.error_count}>"
        )
