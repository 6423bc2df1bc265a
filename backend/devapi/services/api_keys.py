"""
API key issuance and portal management.

Called by the session-authenticated developer portal, never by the public
API. Every operation is scoped to the owning user.

Lifecycle:
  create_api_key  - mint, persist hash, return raw key ONCE
  list_api_keys   - metadata only (no hash, no raw key)
  rename_api_key  - change the label
  revoke_api_key  - is_active = false, one-way
Keys are never deleted.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.hashing import display_prefix, generate_api_key
from devapi.models.api_key import APIKey

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 100
DEFAULT_RATE_LIMIT_RPM = 60


class InvalidLabel(ValueError):
    """Label is empty after trimming or too long."""


class ApiKeyNotFound(LookupError):
    """No key with that id belongs to this owner."""


@dataclass(frozen=True, slots=True)
class IssuedKey:
    """Result of create_api_key. raw_key is never retrievable again."""

    raw_key: str
    key_id: uuid.UUID


def normalize_label(label: str | None) -> str:
    trimmed = (label or "").strip()
    if not trimmed:
        raise InvalidLabel("Please enter a name for the key.")
    if len(trimmed) > MAX_LABEL_LENGTH:
        raise InvalidLabel(
            f"Key name must be {MAX_LABEL_LENGTH} characters or less."
        )
    return trimmed


async def create_api_key(
    session: AsyncSession,
    owner_id: uuid.UUID,
    label: str,
    *,
    rate_limit_rpm: int = DEFAULT_RATE_LIMIT_RPM,
    expires_at: datetime.datetime | None = None,
) -> IssuedKey:
    """
    Issue a new API key for owner_id.

    Raises:
        InvalidLabel: label empty or longer than MAX_LABEL_LENGTH.
        SQLAlchemyError: persistence failure (propagated to the caller).
    """
    clean_label = normalize_label(label)
    raw_key, key_hash = generate_api_key()

    api_key = APIKey(
        owner_id=owner_id,
        label=clean_label,
        key_hash=key_hash,
        key_prefix=display_prefix(raw_key),
        is_active=True,
        rate_limit_rpm=rate_limit_rpm,
        expires_at=expires_at,
    )
    session.add(api_key)
    await session.commit()

    logger.info("Issued API key %s (%s) for owner %s", api_key.id, api_key.key_prefix, owner_id)
    return IssuedKey(raw_key=raw_key, key_id=api_key.id)


async def list_api_keys(
    session: AsyncSession,
    owner_id: uuid.UUID,
) -> list[APIKey]:
    """All keys of owner_id, newest first, revoked ones included."""
    stmt = (
        select(APIKey)
        .where(APIKey.owner_id == owner_id)
        .order_by(APIKey.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_owned_key(
    session: AsyncSession,
    owner_id: uuid.UUID,
    key_id: uuid.UUID,
) -> APIKey:
    stmt = select(APIKey).where(
        APIKey.id == key_id,
        APIKey.owner_id == owner_id,
    )
    api_key = (await session.execute(stmt)).scalar_one_or_none()
    if api_key is None:
        raise ApiKeyNotFound(str(key_id))
    return api_key


async def rename_api_key(
    session: AsyncSession,
    owner_id: uuid.UUID,
    key_id: uuid.UUID,
    label: str,
) -> APIKey:
    clean_label = normalize_label(label)
    api_key = await get_owned_key(session, owner_id, key_id)
    api_key.label = clean_label
    await session.commit()
    return api_key


async def revoke_api_key(
    session: AsyncSession,
    owner_id: uuid.UUID,
    key_id: uuid.UUID,
) -> APIKey:
    """
    Revoke a key. Idempotent - revoking a revoked key is a no-op.

    There is no un-revoke: a replacement must be issued instead.
    """
    api_key = await get_owned_key(session, owner_id, key_id)
    if api_key.is_active:
        api_key.is_active = False
        await session.commit()
        logger.info("Revoked API key %s for owner %s", key_id, owner_id)
    return api_key
