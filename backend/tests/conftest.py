"""
Pytest fixtures for the reservation engine.

Each test gets a fresh in-memory SQLite database (aiosqlite, single shared
connection through StaticPool), a FixedClock and recording fakes for the
customer directory and notification dispatcher. Redis is disabled so range
queries always hit the database.
"""

import os

os.environ["REDIS_ENABLED"] = "false"

from datetime import date, datetime, time, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from reservation_engine.core.clock import FixedClock
from reservation_engine.db.base import Base
from reservation_engine.main import app
from reservation_engine.models import Booking, BookingStatus, Branch, Table
from reservation_engine.schemas.policy import WEEKDAY_NAMES
from reservation_engine.services.container import ReservationServices, build_services
from reservation_engine.services.interfaces import CustomerDirectory, CustomerRecord, NotificationDispatcher

TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Monday 2030-06-03 10:00 UTC
NOW = datetime(2030, 6, 3, 10, 0, tzinfo=timezone.utc)
TOMORROW = date(2030, 6, 4)


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    async def notify(self, user_id, category, title, message, data):
        self.sent.append(
            {"user_id": user_id, "category": category, "title": title, "message": message, "data": data}
        )


class FakeCustomerDirectory(CustomerDirectory):
    """Knows every customer id below 1000; user ids are offset to tell them apart."""

    async def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        if customer_id >= 1000:
            return None
        return CustomerRecord(id=customer_id, user_id=customer_id + 5000, name=f"Customer {customer_id}")


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables on a fresh in-memory database, drop everything afterwards."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def services(session_factory, clock, dispatcher) -> ReservationServices:
    return build_services(
        session_factory,
        clock=clock,
        customers=FakeCustomerDirectory(),
        dispatcher=dispatcher,
        cache_invalidation=False,
    )


@pytest_asyncio.fixture(scope="function")
async def client(services: ReservationServices) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test service graph."""
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await services.event_bus.drain()
    app.state.services = None


def open_every_day(open_at: str = "11:00", close_at: str = "22:00") -> dict:
    return {day: {"open": open_at, "close": close_at, "is_closed": False} for day in WEEKDAY_NAMES}


@pytest.fixture
def make_branch(session_factory):
    """Create a branch accepting reservations; keyword arguments override policy settings."""

    async def _make_branch(operating_hours: Optional[dict] = None, timezone_name: str = "UTC", **policy) -> int:
        settings = {"enabled": True, "requires_approval": False, **policy}
        async with session_factory() as db:
            branch = Branch(
                merchant_id=1,
                name="Harbour Street",
                timezone=timezone_name,
                operating_hours=operating_hours if operating_hours is not None else open_every_day(),
                reservation_settings=settings,
            )
            db.add(branch)
            await db.commit()
            return branch.id

    return _make_branch


@pytest.fixture
def make_table(session_factory):
    async def _make_table(
        branch_id: int,
        table_number: str,
        capacity: int,
        location_type: str = "indoor",
        is_active: bool = True,
    ) -> int:
        async with session_factory() as db:
            table = Table(
                branch_id=branch_id,
                table_number=table_number,
                capacity=capacity,
                location_type=location_type,
                is_active=is_active,
            )
            db.add(table)
            await db.commit()
            return table.id

    return _make_table


@pytest.fixture
def make_booking(session_factory):
    """Insert a booking row directly, bypassing the lifecycle manager."""
    counter = {"n": 0}

    async def _make_booking(
        branch_id: int,
        booking_time: time,
        party_size: int = 2,
        status: BookingStatus = BookingStatus.APPROVED,
        table_id: Optional[int] = None,
        booking_date: date = TOMORROW,
        waitlist_position: Optional[int] = None,
        duration_minutes: int = 90,
        customer_id: int = 1,
    ) -> int:
        counter["n"] += 1
        async with session_factory() as db:
            booking = Booking(
                branch_id=branch_id,
                customer_id=customer_id,
                table_id=table_id,
                reference=f"B{branch_id}-SEED{counter['n']:03d}",
                booking_date=booking_date,
                booking_time=booking_time,
                duration_minutes=duration_minutes,
                party_size=party_size,
                status=status.value,
                waitlist_position=waitlist_position,
                check_in_code="123456",
            )
            db.add(booking)
            await db.commit()
            return booking.id

    return _make_booking


@pytest.fixture
def fetch_booking(session_factory):
    async def _fetch(booking_id: int) -> Booking:
        async with session_factory() as db:
            return await db.get(Booking, booking_id)

    return _fetch


@pytest.fixture
def fetch_table(session_factory):
    async def _fetch(table_id: int) -> Table:
        async with session_factory() as db:
            return await db.get(Table, table_id)

    return _fetch
