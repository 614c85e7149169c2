"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database and a mocked Stripe client,
so no external services are needed.
"""
import hashlib
import hmac
import os
import time
from typing import Any, AsyncGenerator, Dict, Optional
from unittest.mock import AsyncMock

# Configure the app before it is imported
os.environ["APP_ENV"] = "test"
os.environ["REGISTER_WEBHOOKS"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake_key_for_testing"
os.environ["SECRET_KEY"] = "test-session-secret"
os.environ["PUBLIC_DOMAIN"] = "http://localhost:3000"
os.environ["LOG_LEVEL"] = "INFO"

import pytest
import pytest_asyncio
import stripe
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from rocket_deliveries.api.dependencies import get_stripe_client
from rocket_deliveries.api.main import app
from rocket_deliveries.database.connection import get_db
from rocket_deliveries.database.models import Base, Pilot
from rocket_deliveries.integrations.stripe_client import StripeClient

WEBHOOK_SECRET = "whsec_test_fake_secret"
PILOT_EMAIL = "ada@example.com"
PILOT_PASSWORD = "rocket123"
PILOT_ACCOUNT_ID = "acct_pilot123"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, Any]:
    """Create an in-memory database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def stripe_client() -> AsyncMock:
    """Stripe client whose API calls are all mocked."""
    return AsyncMock(spec=StripeClient)


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession], stripe_client: AsyncMock
) -> AsyncGenerator[AsyncClient, Any]:
    """HTTP client for the app, wired to the test database and Stripe mock."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, Any]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client
    app.state.webhook_secret = WEBHOOK_SECRET

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_pilot(db: AsyncSession, **overrides: Any) -> Pilot:
    """Save a pilot with a complete individual profile."""
    fields: Dict[str, Any] = {
        "email": PILOT_EMAIL,
        "type": "individual",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "address": "1 Market St",
        "city": "San Francisco",
        "state": "CA",
        "postal_code": "94105",
        "country": "US",
        "stripe_account_id": PILOT_ACCOUNT_ID,
    }
    fields.update(overrides)
    password = fields.pop("password", PILOT_PASSWORD)
    pilot = Pilot(**fields)
    pilot.set_password(password)
    db.add(pilot)
    await db.commit()
    return pilot


@pytest_asyncio.fixture
async def pilot(db: AsyncSession) -> Pilot:
    return await create_pilot(db)


@pytest_asyncio.fixture
async def logged_in_client(client: AsyncClient, pilot: Pilot) -> AsyncClient:
    """HTTP client with the test pilot signed in."""
    response = await client.post(
        "/pilots/login", data={"email": PILOT_EMAIL, "password": PILOT_PASSWORD}
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/pilots/dashboard"
    return client


def make_account(
    account_id: str = PILOT_ACCOUNT_ID,
    details_submitted: bool = True,
    payouts_enabled: bool = True,
    disabled_reason: Optional[str] = None,
) -> stripe.Account:
    return stripe.Account.construct_from(
        {
            "id": account_id,
            "object": "account",
            "details_submitted": details_submitted,
            "payouts_enabled": payouts_enabled,
            "requirements": {"disabled_reason": disabled_reason},
        },
        "sk_test_fake_key_for_testing",
    )


def make_balance(available: int = 0, pending: int = 0, currency: str = "usd") -> stripe.Balance:
    return stripe.Balance.construct_from(
        {
            "object": "balance",
            "available": [{"amount": available, "currency": currency}],
            "pending": [{"amount": pending, "currency": currency}],
        },
        "sk_test_fake_key_for_testing",
    )


def make_charge(charge_id: str = "ch_test_123") -> stripe.Charge:
    return stripe.Charge.construct_from(
        {"id": charge_id, "object": "charge", "status": "succeeded"},
        "sk_test_fake_key_for_testing",
    )


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value for ``payload``."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"
