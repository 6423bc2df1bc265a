"""
Dev bootstrap script - create the tables and issue an API key for local development.

Usage:
    python -m scripts.bootstrap_dev [owner-uuid]

This will:
  1. Create any missing tables (dev only - production uses Alembic)
  2. Issue an API key labelled "Dev Key" for the given owner
     (a fresh random owner id if none is given)
  3. Print the raw key ONCE (it is never stored)

The raw key is shown exactly once - copy it immediately.
"""

import asyncio
import sys
import uuid

# Ensure the project root is on the path
sys.path.insert(0, ".")

from devapi.core.config import Settings
from devapi.core.database import Base, build_engine, build_session_factory
from devapi.services.api_keys import create_api_key

import devapi.models.api_key  # noqa: F401
import devapi.models.external_identity  # noqa: F401
import devapi.models.review  # noqa: F401
import devapi.models.rollups  # noqa: F401


async def main() -> None:
    owner_id = uuid.UUID(sys.argv[1]) if len(sys.argv) > 1 else uuid.uuid4()

    settings = Settings()  # type: ignore[call-arg]
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)

    # ── Create tables ───────────────────────────────────────
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # ── Issue API key ───────────────────────────────────────
    async with session_factory() as session:
        issued = await create_api_key(
            session,
            owner_id,
            "Dev Key",
            rate_limit_rpm=settings.DEFAULT_RATE_LIMIT_RPM,
        )

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Owner ID:   {owner_id}")
    print(f"  Key ID:     {issued.key_id}")
    print()
    print(f"  API Key:    {issued.raw_key}")
    print()
    print("  ⚠  Copy this key now - it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
