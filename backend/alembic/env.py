"""
Alembic environment for the developer API schema.

  • The database URL is read from devapi Settings (DATABASE_URL), never
    from alembic.ini.
  • Autogenerate diffs against devapi's Base.metadata, so every model
    module is imported below.
  • Online runs open an async engine for whatever driver DATABASE_URL
    names (asyncpg in production). SQLite gets batch mode for ALTERs.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from devapi.core.config import Settings
from devapi.core.database import Base

import devapi.models.api_key  # noqa: F401
import devapi.models.external_identity  # noqa: F401
import devapi.models.review  # noqa: F401
import devapi.models.rollups  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

DATABASE_URL = Settings().DATABASE_URL  # type: ignore[call-arg]


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=Base.metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    # NullPool: one connection for the run, nothing left open afterwards.
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


def _emit_sql() -> None:
    """`alembic upgrade --sql`: render the DDL without connecting."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _emit_sql()
else:
    asyncio.run(_migrate_online())
