"""
Process-wide handles to the backing stores.

One Resources object is built at startup (lifespan) or handed to
create_app() by tests, stored on app.state, and reached from dependencies
through the request. Nothing here is a module global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import redis.asyncio as aioredis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from devapi.core.config import Settings
from devapi.core.database import build_engine, build_session_factory
from devapi.core.redis import build_redis

logger = logging.getLogger(__name__)


@dataclass
class Resources:
    """Engine, session factory and Redis client for one process."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: aioredis.Redis

    @classmethod
    def from_settings(cls, settings: Settings) -> Resources:
        engine = build_engine(settings)
        return cls(
            engine=engine,
            session_factory=build_session_factory(engine),
            redis=build_redis(settings),
        )

    async def aclose(self) -> None:
        """Release pooled connections. Called once on shutdown."""
        await self.redis.aclose()
        await self.engine.dispose()
        logger.info("Database engine and Redis client closed ✓")


def get_resources(request: Request) -> Resources:
    """FastAPI dependency - the Resources bound to this app."""
    return request.app.state.resources


def get_settings(request: Request) -> Settings:
    """FastAPI dependency - the Settings bound to this app."""
    return request.app.state.settings
