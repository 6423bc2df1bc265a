"""
Pydantic v2 schemas for the integrator-facing review and user endpoints.

Both endpoints accept an external_user_id, which is only ever hashed:
the response carries the internal anon_id instead.
"""

from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel, Field, model_validator

BrewMethod = Literal[
    "whole",
    "filter",
    "espresso",
    "drip",
    "other",
    "turkish",
    "moka_pot",
    "cold_brew",
    "aeropress",
    "channi",
]


# ── POST /v1/users ──────────────────────────────────────────
class ExternalUserCreate(BaseModel):
    external_user_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        examples=["user-42"],
        description="The integrator's own user id. Hashed, never stored raw.",
    )
    display_name: str | None = Field(default=None, max_length=100)


class ExternalUserOut(BaseModel):
    anon_id: uuid.UUID


# ── POST /v1/reviews ────────────────────────────────────────
class ReviewCreate(BaseModel):
    """
    Payload accepted by POST /v1/reviews.

    Needs at least one signal (rating, recommend, value_for_money,
    works_with_milk or a non-blank comment) and one identity
    (anon_id or external_user_id).
    Unknown fields are ignored.
    """

    entity_type: Literal["coffee", "roaster"]
    entity_id: uuid.UUID
    rating: int | None = Field(default=None, ge=1, le=5)
    recommend: bool | None = None
    value_for_money: bool | None = None
    works_with_milk: bool | None = None
    brew_method: BrewMethod | None = None
    comment: str | None = Field(default=None, max_length=5000)
    external_user_id: str | None = Field(default=None, min_length=1, max_length=255)
    anon_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _require_signal_and_identity(self) -> ReviewCreate:
        has_signal = (
            self.rating is not None
            or self.recommend is not None
            or self.value_for_money is not None
            or self.works_with_milk is not None
            or bool(self.comment and self.comment.strip())
        )
        if not has_signal:
            raise ValueError(
                "Provide at least one of: rating, recommend, value_for_money, "
                "works_with_milk, or comment."
            )
        if self.anon_id is None and self.external_user_id is None:
            raise ValueError("Provide either anon_id or external_user_id.")
        return self


class ReviewCreated(BaseModel):
    id: uuid.UUID
    anon_id: uuid.UUID
