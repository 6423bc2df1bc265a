"""
SQLAlchemy model for the `reviews` table (externally submitted rows only).

The catalog that renders and moderates reviews lives elsewhere; this
service only writes rows submitted through POST /v1/reviews, attributed
to an anon_id and to the API key that submitted them.

Design notes:
  • status starts at 'pending_external' - moderation happens downstream.
  • entity_id is not a foreign key: catalog tables are not owned here.
"""

import datetime
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from devapi.core.database import Base


class Review(Base):
    """One review submitted by an integrator on behalf of an external user."""

    __tablename__ = "reviews"

    # ── Primary key ─────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Target ──────────────────────────────────────────────
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # ── Attribution ─────────────────────────────────────────
    anon_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    source_key_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("api_keys.id"),
        nullable=False,
    )

    # ── Signals ─────────────────────────────────────────────
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recommend: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    value_for_money: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    works_with_milk: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    brew_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending_external",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Table-level constraints ─────────────────────────────
    __table_args__ = (
        CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)",
            name="ck_reviews_rating_range",
        ),
        CheckConstraint(
            "entity_type IN ('coffee', 'roaster')",
            name="ck_reviews_entity_type_valid",
        ),
        Index("ix_reviews_entity", "entity_type", "entity_id"),
        Index("ix_reviews_anon_id", "anon_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Review id={self.id!s:.8} {self.entity_type}={self.entity_id!s:.8} "
            f"rating={self.rating}>"
        )
