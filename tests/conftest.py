"""
ProLedger - Test Configuration

Pytest fixtures and configuration.

Every test gets its own in-memory SQLite database. StaticPool keeps the
single connection alive so the request session and the background posting
session see the same data.
"""

from datetime import date
from typing import AsyncGenerator, Dict
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers tables on the metadata)
from app.database import Base, get_async_session, get_session_factory
from app.models.accounting import Account, AccountingPeriod
from app.schemas.accounting import AccountingConfigUpdate
from app.services.accounting_period_service import AccountingPeriodService
from app.services.chart_of_accounts_service import ChartOfAccountsService
from main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client; each request and each background posting gets its own session."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def configured_tenant(db_session: AsyncSession, tenant_id: UUID) -> UUID:
    """Tenant with the PUC chart of accounts and automatic posting enabled."""
    service = ChartOfAccountsService(db_session)
    await service.setup_chart_of_accounts(tenant_id)
    await service.update_config(tenant_id, AccountingConfigUpdate(auto_generate_entries=True))
    return tenant_id


@pytest_asyncio.fixture
async def accounts(db_session: AsyncSession, configured_tenant: UUID) -> Dict[str, Account]:
    """The configured tenant's accounts keyed by PUC code."""
    service = ChartOfAccountsService(db_session)
    return {account.code: account for account in await service.get_accounts(configured_tenant)}


@pytest_asyncio.fixture
async def open_period(db_session: AsyncSession, configured_tenant: UUID) -> AccountingPeriod:
    """An OPEN period covering January 2026."""
    service = AccountingPeriodService(db_session)
    return await service.create_period(
        configured_tenant,
        name="Enero 2026",
        start_date=date(2026, 1, 1),
        end_date=date(2026, 1, 31),
    )
