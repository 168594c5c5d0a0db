"""
Test infrastructure for the Blog API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden, and the module-level session
  factory is rebound, so both request sessions and the detached view-count
  increments use the test database.
- All tables are created fresh before each test and dropped after.
- Redis is disabled by default (cache._redis = None); the CacheManager
  treats that as a permanent miss.  Tests about caching request the
  ``fake_redis`` fixture, which installs an in-memory stand-in exposing the
  handful of redis.asyncio calls the cache makes.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from blogapi import database
from blogapi.cache import cache
from blogapi.database import Base, get_db
from blogapi.main import app
from blogapi.services import article_service

# ---------------------------------------------------------------------------
# Test database engine - SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db
database.async_session = async_session_test


# ---------------------------------------------------------------------------
# Redis stand-in
# ---------------------------------------------------------------------------

class FakeRedis:
    """Dict-backed replacement for the redis.asyncio client calls the cache uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.flushes = 0
        self.broken = False

    def _check(self) -> None:
        if self.broken:
            raise ConnectionError("redis is down")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def flushdb(self) -> bool:
        self._check()
        self.store.clear()
        self.ttls.clear()
        self.flushes += 1
        return True

    async def aclose(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await article_service.wait_for_background_tasks()
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Install an in-memory Redis behind the cache singleton."""
    client = FakeRedis()
    cache._redis = client
    return client


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that need to interact with the
    database directly (e.g. seeding data, asserting ORM state).
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _register_and_login(client: AsyncClient, username: str, role: str) -> str:
    resp = await client.post("/api/auth/register", json={
        "username": username,
        "password": "s3cret-pass",
        "nickname": username.title(),
        "role": role,
    })
    assert resp.status_code == 200, resp.text
    resp = await client.post("/api/auth/login", json={
        "username": username,
        "password": "s3cret-pass",
    })
    assert resp.status_code == 200, resp.text
    # Only the header should authenticate requests in these tests.
    client.cookies.clear()
    return resp.json()["token"]


@pytest_asyncio.fixture
async def admin_headers(async_client: AsyncClient) -> dict:
    token = await _register_and_login(async_client, "admin", "admin")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def user_headers(async_client: AsyncClient) -> dict:
    token = await _register_and_login(async_client, "reader", "user")
    return {"Authorization": f"Bearer {token}"}
