"""
Test fixtures for the Bank Ledger test suite.

This module provides shared fixtures used across all test files:

  - db_engine / session_factory / db_session: Fresh in-memory SQLite
    database for each test
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Own HTTP client for a pre-registered CUSTOMER
  - second_authenticated_client: Own HTTP client for a second CUSTOMER
  - manager_client: Own HTTP client for a BANK_MANAGER

Key design decisions:
  - In-memory SQLite on a StaticPool: every session shares one connection,
    so tests must never hold a transaction open across an HTTP call.
    Direct database checks use a short `async with session_factory()`
    block instead of a long-lived session.
  - The test engine gets the same configure_sqlite() hooks as production
    so SAVEPOINTs behave the way the ledger core expects.
  - We override FastAPI's get_db dependency with the same commit/rollback
    rules as the real one (commit on BankAPIError so denied rows persist).
  - Each authenticated fixture signs up through the real endpoint and
    gets its own AsyncClient, so two users never share headers.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_JSON", "false")

import uuid  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import update  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bank_ledger.database import Base, configure_sqlite, get_db  # noqa: E402
from bank_ledger.exceptions import BankAPIError  # noqa: E402
from bank_ledger.main import app  # noqa: E402
from bank_ledger.models.user import User, UserRole  # noqa: E402


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

CUSTOMER = {
    "email": "testuser@example.com",
    "password": "SecurePass123!",
    "first_name": "Test",
    "last_name": "User",
    "phone_number": "+15550000001",
}
SECOND_CUSTOMER = {
    "email": "seconduser@example.com",
    "password": "SecurePass456!",
    "first_name": "Second",
    "last_name": "User",
    "phone_number": "+15550000002",
}
MANAGER = {
    "email": "manager@example.com",
    "password": "ManagerPass123!",
    "first_name": "Bank",
    "last_name": "Manager",
}


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A session for tests that drive the ledger core directly (no HTTP)."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_app(session_factory):
    """The FastAPI app with get_db pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except BankAPIError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


def _new_client(test_app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test")


async def _sign_up(client: AsyncClient, profile: dict) -> dict:
    response = await client.post("/auth/signup", json=profile)
    assert response.status_code == 201, f"Signup failed: {response.text}"
    data = response.json()
    client.headers["Authorization"] = f"Bearer {data['token']}"
    return data


@pytest_asyncio.fixture
async def client(test_app):
    """Unauthenticated async HTTP test client."""
    async with _new_client(test_app) as ac:
        yield ac


@pytest_asyncio.fixture
async def authenticated_client(test_app):
    """
    Test client for a pre-registered customer.

    Signs up through the real signup endpoint, then sets the Authorization
    header on this client for all subsequent requests.
    """
    async with _new_client(test_app) as ac:
        await _sign_up(ac, CUSTOMER)
        yield ac


@pytest_asyncio.fixture
async def second_authenticated_client(test_app):
    """A second customer, for cross-user tests."""
    async with _new_client(test_app) as ac:
        await _sign_up(ac, SECOND_CUSTOMER)
        yield ac


@pytest_asyncio.fixture
async def manager_client(test_app, session_factory):
    """
    Test client for a BANK_MANAGER.

    Signs up as a customer, then promotes the user directly in the
    database: managers are provisioned by an operator, never self-service.
    """
    async with _new_client(test_app) as ac:
        data = await _sign_up(ac, MANAGER)

        async with session_factory() as session:
            await session.execute(
                update(User)
                .where(User.id == uuid.UUID(data["user_id"]))
                .values(role=UserRole.BANK_MANAGER)
            )
            await session.commit()

        yield ac
