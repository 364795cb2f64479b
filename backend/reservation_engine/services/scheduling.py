"""
Interval math and booking queries shared by availability, assignment,
the waitlist and the lifecycle manager.

All values are branch-local civil datetimes (naive). Windows are half-open:
[start, end). A booking ending at 19:30 does not conflict with one starting
at 19:30.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.core.errors import NotFoundError
from reservation_engine.models.booking import Booking, CONFIRMED_STATUSES


@dataclass(frozen=True)
class ReservationWindow:
    start: datetime
    end: datetime

    @classmethod
    def starting_at(cls, booking_date: date, booking_time: time, duration_minutes: int) -> "ReservationWindow":
        start = datetime.combine(booking_date, booking_time)
        return cls(start, start + timedelta(minutes=duration_minutes))

    @classmethod
    def of(cls, booking: Booking) -> "ReservationWindow":
        return cls.starting_at(booking.booking_date, booking.booking_time, booking.duration_minutes)

    def overlaps(self, other: "ReservationWindow") -> bool:
        return self.start < other.end and other.start < self.end


async def load_confirmed_bookings(
    db: AsyncSession,
    branch_id: int,
    around: date,
    table_ids: Optional[Iterable[int]] = None,
    exclude_booking_id: Optional[int] = None,
) -> list[Booking]:
    """
    Approved/seated bookings holding a table on `around` or the neighbouring
    days, so windows that cross midnight are seen from both sides.
    """
    query = select(Booking).where(
        Booking.branch_id == branch_id,
        Booking.booking_date.between(around - timedelta(days=1), around + timedelta(days=1)),
        Booking.status.in_(CONFIRMED_STATUSES),
        Booking.table_id.is_not(None),
    )
    if table_ids is not None:
        query = query.where(Booking.table_id.in_(list(table_ids)))
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query)
    return list(result.scalars().all())


def busy_table_ids(bookings: Iterable[Booking], window: ReservationWindow) -> set[int]:
    return {b.table_id for b in bookings if ReservationWindow.of(b).overlaps(window)}


async def table_has_conflict(
    db: AsyncSession,
    branch_id: int,
    table_id: int,
    window: ReservationWindow,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    bookings = await load_confirmed_bookings(
        db, branch_id, window.start.date(), table_ids=[table_id], exclude_booking_id=exclude_booking_id
    )
    return table_id in busy_table_ids(bookings, window)


def generate_slots(start: time, end: time, interval_minutes: int, closing_buffer_minutes: int = 60) -> list[time]:
    """
    Bookable start times from `start` every `interval_minutes`, stopping so no
    slot begins within `closing_buffer_minutes` of `end`.
    """
    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, start)
    last = datetime.combine(anchor, end) - timedelta(minutes=closing_buffer_minutes)
    step = timedelta(minutes=interval_minutes)

    slots = []
    while current <= last and current.date() == anchor:
        slots.append(current.time())
        current += step
    return slots


def table_number_key(table_number: str) -> tuple:
    """Sort "2" before "10", numeric numbers before labels like "B1"."""
    if table_number.isdigit():
        return (0, int(table_number), "")
    return (1, 0, table_number)


async def load_booking(db: AsyncSession, booking_id: int, lock: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
    return booking
