import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core import redis_client as redis_client_module
from app.core.database import Base, get_db
from app.core.redis_client import get_redis
from app.main import app
from tests.fakes import FakeRedis


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    """전역 Redis 클라이언트를 인메모리 대역으로 교체 (메트릭 포함)"""
    fake = FakeRedis()
    monkeypatch.setattr(redis_client_module, "_client", fake)
    return fake


@pytest.fixture
async def engine(tmp_path):
    # 동시성 테스트를 위해 세션마다 별도 커넥션을 쓰는 파일 DB
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory, fake_redis):
    async def _get_db():
        async with session_factory() as session:
            yield session

    async def _get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = _get_redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
