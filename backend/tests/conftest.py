"""
Shared fixtures.

Every test gets its own in-memory SQLite database (one shared connection,
tables created from the ORM metadata) and its own fake Redis server, wired
into the app through injected Resources. The lifespan is not run by
ASGITransport, so nothing here touches a real Postgres or Redis.
"""

import uuid

import fakeredis
import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from devapi.core.config import Settings
from devapi.core.database import Base, build_session_factory
from devapi.core.resources import Resources
from devapi.main import create_app
from devapi.services.api_keys import create_api_key

import devapi.models.api_key  # noqa: F401
import devapi.models.external_identity  # noqa: F401
import devapi.models.review  # noqa: F401
import devapi.models.rollups  # noqa: F401

CRON_SECRET = "cron-secret"


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        CRON_SECRET=CRON_SECRET,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
async def redis(redis_server):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def resources(engine, session_factory, redis):
    return Resources(engine=engine, session_factory=session_factory, redis=redis)


@pytest.fixture
def app(settings, resources):
    return create_app(settings, resources)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
async def issued_key(session_factory, owner_id):
    """A fresh active key with the default 60 rpm budget."""
    async with session_factory() as session:
        return await create_api_key(session, owner_id, "Test Key")
