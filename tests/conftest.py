"""
Shared test fixtures.

These replace real infrastructure with lightweight in-memory alternatives:
- PostgreSQL → SQLite in memory (aiosqlite for the API, sqlite3 for workers)
- Redis → fakeredis (pure Python Redis mock)
- S3 → MemoryStorage (dict of key → bytes)
- Image provider → ScriptedClient (returns/raises a scripted sequence)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)

StaticPool keeps a single connection per engine: every SQLite ":memory:"
connection is its own empty database, so without it the tables created
in the fixture would not be visible to the code under test.
"""

import fakeredis
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.dependencies import get_db, get_redis, get_storage
from api.main import create_app
from models.base import Base
from models.enums import GenerationStyle, ImageFormat
from models.product import Product
from publisher.notifier import JobNotifier
from publisher.publisher import ResultPublisher
from store.job_store import JobStore
from tests.helpers import OWNER, MemoryStorage
from worker.retry import RetryHandler


# ── API side (async) ────────────────────────────────────────────

@pytest_asyncio.fixture
async def async_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    """Create a database session bound to the test engine."""
    factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis():
    """Create a fake Redis instance (in-memory, no real Redis needed)."""
    r = FakeRedis()
    yield r
    await r.flushall()


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest_asyncio.fixture
async def client(async_session, fake_redis, memory_storage):
    """
    Test HTTP client that talks directly to the FastAPI app, as user-1.

    dependency_overrides swaps the real session, Redis and storage for the
    in-memory ones; ASGITransport means requests never leave the process.
    Pass headers=OTHER_USER / ADMIN on a request to act as someone else.
    """
    app = create_app()

    async def override_get_db():
        yield async_session

    async def override_get_redis():
        return fake_redis

    async def override_get_storage():
        return memory_storage

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_storage] = override_get_storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=OWNER) as c:
        yield c


@pytest_asyncio.fixture
async def product(async_session):
    """A product owned by user-1."""
    p = Product(owner_id=OWNER["X-Caller-Id"], name="Ceramic mug")
    async_session.add(p)
    await async_session.commit()
    return p


# ── Worker side (sync) ──────────────────────────────────────────

@pytest.fixture
def db_sessions():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def store(db_sessions):
    return JobStore(db_sessions)


@pytest.fixture
def sync_redis():
    return fakeredis.FakeRedis()


@pytest.fixture
def notifier(sync_redis):
    return JobNotifier(sync_redis)


@pytest.fixture
def retry_handler(store, notifier):
    return RetryHandler(store, notifier, backoff_base=2.0, backoff_max=300.0)


@pytest.fixture
def publisher(memory_storage):
    return ResultPublisher(memory_storage, key_prefix="generations", attempts=3, retry_wait=0)


@pytest.fixture
def make_job(store):
    """Insert a PENDING job for user-1; keyword arguments override the defaults."""
    def _make(**overrides):
        fields = {
            "owner_id": OWNER["X-Caller-Id"],
            "prompt": "Ceramic mug on a marble counter",
            "style": GenerationStyle.REALISTIC,
            "format": ImageFormat.SQUARE,
            "max_attempts": 3,
        }
        fields.update(overrides)
        return store.create(**fields)
    return _make
