"""
Pydantic v2 schemas for the developer portal key endpoints.

The raw key appears in exactly one schema (ApiKeyCreated) and is never
readable again. No schema ever carries key_hash.
"""

from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field


class ApiKeyCreate(BaseModel):
    """Payload accepted by POST /developer/keys."""

    model_config = ConfigDict(extra="forbid")

    label: str = Field(
        ...,
        examples=["Prod Integration"],
        description="Human name for the key (1–100 characters after trimming).",
    )
    expires_at: datetime.datetime | None = Field(
        default=None,
        description="Optional hard expiry (UTC).",
    )


class ApiKeyRename(BaseModel):
    """Payload accepted by PATCH /developer/keys/{key_id}."""

    model_config = ConfigDict(extra="forbid")

    label: str


class ApiKeyCreated(BaseModel):
    """Returned ONCE on creation. Copy raw_key now - it is not stored."""

    key_id: uuid.UUID
    raw_key: str


class ApiKeyOut(BaseModel):
    """Key metadata for listing. Never includes the hash or the raw key."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    label: str
    key_prefix: str
    is_active: bool
    rate_limit_rpm: int
    created_at: datetime.datetime
    last_used_at: datetime.datetime | None
    expires_at: datetime.datetime | None
