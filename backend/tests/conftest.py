"""Pytest configuration and fixtures for async testing."""
import os

# Must be set before pulse.config is imported
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["ASAAS_WEBHOOK_TOKEN"] = ""
os.environ["DEBUG"] = "false"

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pulse.cache import RedisCache
from pulse.database import Base
from pulse.integrations.uazapi_client import UazapiClient
from pulse.main import app
from pulse.models.profile import Profile
from pulse.services.whatsapp_connection import InstanceTokenCache, WhatsAppConnectionService
from utils.fakes import FakeUazapi, make_cache

# One shared in-memory connection so every session sees the same tables
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)

# Create async session factory for tests
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session
    async with TestAsyncSessionLocal() as session:
        yield session
        await session.rollback()

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database (tables already created)."""
    return TestAsyncSessionLocal


@pytest.fixture(scope="function")
def fake_cache() -> RedisCache:
    return make_cache()


@pytest.fixture(scope="function")
def fake_uazapi() -> FakeUazapi:
    """uazapi emulator; tests adjust ``statuses`` before polling starts."""
    return FakeUazapi()


@pytest_asyncio.fixture(scope="function")
async def whatsapp_service(
    fake_uazapi: FakeUazapi,
    fake_cache: RedisCache,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[WhatsAppConnectionService, None]:
    """
    WhatsApp connection service wired to the uazapi emulator.

    Yields:
        WhatsAppConnectionService: Service with a short poll interval
    """
    service = WhatsAppConnectionService(
        client=UazapiClient(
            base_url="https://uazapi.test",
            admin_token="admin-secret",
            transport=fake_uazapi.transport(),
        ),
        token_cache=InstanceTokenCache(fake_cache, prefix="test_instance_token"),
        session_factory=session_factory,
        poll_interval=0.01,
    )
    yield service
    await service.shutdown()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    whatsapp_service: WhatsAppConnectionService,
    fake_cache: RedisCache,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with dependency overrides.

    Each request gets its own session from the test session factory, so
    request commits are visible to fresh sessions opened by the test.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from pulse.api.deps import get_whatsapp_service
    from pulse.database import get_db

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        async with TestAsyncSessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_whatsapp_service] = lambda: whatsapp_service
    app.state.cache = fake_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_profile(db_session: AsyncSession) -> Profile:
    """
    Create a profile linked to an Asaas customer.

    Returns:
        Profile: Profile with ``external_customer_id`` set and no active subscription
    """
    profile = Profile(external_customer_id="cus_000005219613", subscription_active=False)

    db_session.add(profile)
    await db_session.commit()
    await db_session.refresh(profile)

    return profile
