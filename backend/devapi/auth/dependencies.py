"""
API key authentication (Key Validator).

Flow:
  1. Extract the key from `Authorization: Bearer …` or `X-API-Key`
  2. Reject missing / wrong-prefix keys without touching the DB
  3. Hash the key (SHA-256) and look up api_keys by hash
  4. Verify is_active, then expires_at
  5. Return a Principal (key id, owner id, clamped rate tier)

Security:
  • Generic 401 for ALL failure modes (the reason is only logged)
  • Raw keys are NEVER logged
  • Hash lookup means the DB never sees the raw key
  • The lookup is time-boxed; a slow or broken DB gives 503, not a hang
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.errors import AuthError, AuthFailure, StoreUnavailable
from devapi.auth.hashing import has_key_prefix, hash_secret
from devapi.core.config import Settings
from devapi.core.database import get_db_session
from devapi.core.resources import get_settings
from devapi.models.api_key import APIKey
from devapi.services.rate_limiter import clamp_rpm

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated request context injected into every protected route.

    Attributes:
        key_id:         The API key UUID used for this request.
        owner_id:       The portal user who owns the key.
        rate_limit_rpm: Effective per-minute budget, already clamped.
    """

    key_id: uuid.UUID
    owner_id: uuid.UUID
    rate_limit_rpm: int


def extract_api_key(
    authorization: str | None,
    x_api_key: str | None,
) -> str | None:
    """Bearer header wins; X-API-Key is the fallback. Blank counts as absent."""
    if authorization:
        parts = authorization.split(" ", maxsplit=1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            token = parts[1].strip()
            if token:
                return token
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    return None


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # SQLite hands back naive datetimes; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


async def _lookup_key(session: AsyncSession, key_hash: str) -> APIKey | None:
    stmt = select(APIKey).where(APIKey.key_hash == key_hash)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def authenticate(
    session: AsyncSession,
    raw_key: str | None,
    *,
    now: datetime.datetime | None = None,
    timeout: float | None = None,
) -> Principal:
    """
    Resolve a raw key to a Principal.

    Raises:
        AuthError:        missing, malformed, unknown, revoked or expired key.
        StoreUnavailable: the key store failed or did not answer in time.
    """

    # ── 1. Cheap fast-fail ──────────────────────────────────
    if not raw_key:
        raise AuthError(AuthFailure.MISSING)
    if not has_key_prefix(raw_key):
        raise AuthError(AuthFailure.MALFORMED)

    # ── 2. Hash and look up ─────────────────────────────────
    key_hash = hash_secret(raw_key)
    try:
        api_key = await asyncio.wait_for(_lookup_key(session, key_hash), timeout)
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
        logger.error("API key lookup failed: %s", exc.__class__.__name__)
        raise StoreUnavailable("key store") from exc

    if api_key is None:
        raise AuthError(AuthFailure.UNKNOWN)

    # ── 3. Revoked beats everything else ────────────────────
    if not api_key.is_active:
        raise AuthError(AuthFailure.REVOKED)

    # ── 4. Expiry is computed, not stored ───────────────────
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if api_key.expires_at is not None and _as_utc(api_key.expires_at) < now:
        raise AuthError(AuthFailure.EXPIRED)

    return Principal(
        key_id=api_key.id,
        owner_id=api_key.owner_id,
        rate_limit_rpm=clamp_rpm(api_key.rate_limit_rpm),
    )


async def get_principal(
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """
    FastAPI dependency - resolves the presented key to a Principal.

    Raises AuthError (→ 401) or StoreUnavailable (→ 503); the handlers
    registered in devapi.main render both.
    """
    raw_key = extract_api_key(authorization, x_api_key)
    try:
        return await authenticate(
            session,
            raw_key,
            timeout=settings.AUTH_STORE_TIMEOUT_SECONDS,
        )
    except AuthError as exc:
        logger.info("API key rejected: %s", exc.reason.value)
        raise
