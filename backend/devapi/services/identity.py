"""
External identity resolution: (key_id, external_user_id) → anon_id.

Integrators identify their users with their own ids. We never store those:
the id is SHA-256 hashed (deterministic, no salt) and the hash, scoped by
key_id, maps to an internally minted UUID.

RACE HANDLING:
  Two concurrent first resolutions of the same pair both miss the lookup.
  The insert uses ON CONFLICT DO NOTHING on the (key_id, hash) primary key
  and is always followed by a re-read, so the loser returns the winner's
  anon_id instead of erroring or creating a second identity.

Known limitation: hashing is scoped only by key_id. If one key is shared
by unrelated integrators, their users' identities collide.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devapi.auth.hashing import hash_secret
from devapi.core.database import upsert_insert
from devapi.models.external_identity import ExternalIdentity

logger = logging.getLogger(__name__)


async def _fetch_anon_id(
    session: AsyncSession,
    key_id: uuid.UUID,
    external_user_hash: str,
) -> uuid.UUID | None:
    stmt = select(ExternalIdentity.anon_id).where(
        ExternalIdentity.key_id == key_id,
        ExternalIdentity.external_user_hash == external_user_hash,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_anon_id(
    session: AsyncSession,
    key_id: uuid.UUID,
    raw_external_user_id: str,
) -> uuid.UUID:
    """
    Return the stable anon_id for this integrator user, creating it lazily.

    Commits the session when a new mapping is inserted.
    """
    external_user_hash = hash_secret(raw_external_user_id)

    # ── 1. Existing mapping ─────────────────────────────────
    anon_id = await _fetch_anon_id(session, key_id, external_user_hash)
    if anon_id is not None:
        return anon_id

    # ── 2. First sighting - insert, tolerating a concurrent winner ──
    stmt = upsert_insert(session, ExternalIdentity).values(
        key_id=key_id,
        external_user_hash=external_user_hash,
        anon_id=uuid.uuid4(),
    ).on_conflict_do_nothing(
        index_elements=["key_id", "external_user_hash"],
    )
    await session.execute(stmt)
    await session.commit()

    # ── 3. Re-read - returns whichever row won ──────────────
    anon_id = await _fetch_anon_id(session, key_id, external_user_hash)
    if anon_id is None:
        raise RuntimeError("external identity vanished after insert")

    logger.info("Registered external identity %s for key %s", anon_id, key_id)
    return anon_id
