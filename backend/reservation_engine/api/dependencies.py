"""
FastAPI dependencies exposing the engine's services.

The service graph is built in the application lifespan and stored on
app.state, so tests can install their own graph before requests are made.
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.core.logging import bind_path_ids
from reservation_engine.services.availability_service import AvailabilityEngine
from reservation_engine.services.booking_service import BookingLifecycleManager
from reservation_engine.services.container import ReservationServices
from reservation_engine.services.waitlist_service import WaitlistCoordinator


def get_services(request: Request) -> ReservationServices:
    return request.app.state.services


def get_booking_manager(request: Request) -> BookingLifecycleManager:
    return get_services(request).bookings


def get_availability_engine(request: Request) -> AvailabilityEngine:
    return get_services(request).availability


def get_waitlist_coordinator(request: Request) -> WaitlistCoordinator:
    return get_services(request).waitlist


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Read-only session for availability and waitlist queries."""
    async with get_services(request).session_factory() as session:
        yield session


async def bind_log_context(request: Request) -> None:
    bind_path_ids(request.path_params)
