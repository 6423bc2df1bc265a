"""
External identity mapping - integrator-supplied user id → internal anon id.

Security notes:
  • The raw external user id is NEVER stored, only its SHA-256 digest.
  • Scoped by key_id: the same raw id under two keys yields two
    unrelated anon ids (no cross-tenant linkage).
  • Rows are immutable once written. The composite primary key is what
    makes a concurrent first resolution converge on a single anon id.
"""

import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from devapi.core.database import Base


class ExternalIdentity(Base):
    """Stable pseudonymous identity for one (key, external user) pair."""

    __tablename__ = "external_user_identities"

    key_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("api_keys.id"),
        primary_key=True,
    )
    external_user_hash: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    anon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        unique=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ExternalIdentity key={self.key_id!s:.8} anon={self.anon_id!s:.8}>"
