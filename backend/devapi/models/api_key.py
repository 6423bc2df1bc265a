"""
API key model - credential issued to an external integrator.

Security notes:
  • Raw API keys are NEVER stored. Only a SHA-256 hash is persisted.
  • The `key_prefix` column stores the first 16 characters
    (e.g., "icb_live_3f9a1c2") for identification in the portal without
    exposing the full key. It is never used for authentication.
  • `is_active` allows key revocation without deletion (audit trail).
    Revocation is one-way; there is no path back to active.
  • Expiry is not a stored state: `expires_at` is compared against the
    clock on every validation.
"""

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from devapi.core.database import Base


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class APIKey(Base):
    """Hashed API key belonging to a portal user."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )
    label: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    key_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True,
    )
    key_prefix: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )
    rate_limit_rpm: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=60,
        server_default="60",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    last_used_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<APIKey id={self.id!s:.8} prefix={self.key_prefix!r} "
            f"active={self.is_active}>"
        )
