import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tariff_engine.config import Settings
from tariff_engine.models.base import Base
# Import all models so they register with Base.metadata for create_all
import tariff_engine.models  # noqa: F401


@pytest.fixture
async def test_engine(tmp_path):
    # SQLite for tests (no Postgres dependency needed)
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        anthropic_api_key="",
        redis_url="",
        sentry_dsn="",
        database_url="sqlite+aiosqlite:///test.db",
        classification_api_url="https://tariff.test/api/v2",
        batch_lookup_delay_seconds=0.0,
        default_vat_rate=19.0,
        remote_default_vat_rate=20.0,
    )
