"""Service test fixtures — async DB, seeded bookings/escrows + FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched for the notifier, which opens its own sessions
    - Transaction verifier and rate limiter replaced by controllable fakes

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for CAS transitions
      (PostgreSQL-specific features not exercised here)
    - Seed fixtures return ids, not ORM objects: a rolled-back transaction expires
      every loaded instance in the session
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from desynth.api.dependencies import get_rate_limiter, get_verifier_factory
from desynth.db.base import Base
from desynth.infrastructure.database import get_db, DatabaseSessionManager
from desynth.infrastructure.rate_limiter import InMemorySlidingWindowLimiter
from desynth.services.booking_lifecycle import BookingLifecycle
from desynth.services.escrow_coordinator import EscrowCoordinator
import desynth.infrastructure.database as db_module
import desynth.models  # noqa: F401
from desynth.main import app

from tests.services.fakes import (
    BUYER, CDMO_CRYPTO, FACILITY_ADDRESS, FUNDING_TX, OWNER, FakeVerifier,
)


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_verifier():
    return FakeVerifier()


@pytest.fixture
def rate_limiter():
    return InMemorySlidingWindowLimiter(max_requests=100, window_seconds=60.0)


@pytest.fixture
async def client(test_engine, test_session_factory, fake_verifier, rate_limiter):
    """FastAPI test client with DB, verifier and rate limiter overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_verifier_factory] = lambda: (lambda: fake_verifier)
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    # Patch db_manager for the notifier, which bypasses get_db
    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
def make_booking(test_db):
    """Factory: persist a reserved crypto booking, return its id."""
    async def _make(buyer=BUYER, owner_id=OWNER.id, base_amount="1000"):
        booking = await BookingLifecycle(test_db).create_booking(
            buyer, "slot-1", base_amount, CDMO_CRYPTO, facility_owner_id=owner_id,
        )
        return booking.id
    return _make


@pytest.fixture
def make_escrow(test_db, fake_verifier, make_booking):
    """Factory: booking + escrow, optionally funded and/or disputed."""
    async def _make(funded=False, disputed=False, tx_hash=FUNDING_TX):
        booking_id = await make_booking()
        coordinator = EscrowCoordinator(test_db, fake_verifier)
        await coordinator.create_escrow(booking_id, "1030", FACILITY_ADDRESS)
        if funded or disputed:
            await coordinator.confirm_escrow(booking_id, tx_hash)
        if disputed:
            await coordinator.dispute_escrow(booking_id, BUYER)
        return booking_id
    return _make
