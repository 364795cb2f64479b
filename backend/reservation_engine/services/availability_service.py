"""
Availability engine: can a party be seated at a branch at a given time?

A table is free for a request when it is active, seats the party and no
approved or seated booking on it has a window intersecting
[time, time + duration). Table.status is deliberately ignored here; it
describes the floor right now, not future windows.

Business-rule rejections (closed, blackout, too soon, ...) come back inside
AvailabilityResult with a reason code. Only a missing branch raises.
"""

from datetime import date, datetime, time, timedelta
from time import perf_counter
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.core.config import get_settings
from reservation_engine.core.errors import ErrorCode, PolicyViolationError
from reservation_engine.core.logging import get_logger
from reservation_engine.core.metrics import availability_latency, record_availability
from reservation_engine.models.booking import Booking, BookingStatus
from reservation_engine.models.schedule import BlackoutWindow
from reservation_engine.models.table import Table
from reservation_engine.schemas.availability import (
    AvailabilityResult,
    DayAvailability,
    RangeAvailability,
    SlotAvailability,
    TableSummary,
)
from reservation_engine.schemas.policy import BranchConfig
from reservation_engine.services import cache_service
from reservation_engine.services.policy_store import BranchPolicyStore
from reservation_engine.services.scheduling import (
    ReservationWindow,
    busy_table_ids,
    generate_slots,
    load_confirmed_bookings,
)
from reservation_engine.services.table_assignment import TableAssignmentPolicy

logger = get_logger(__name__)


class AvailabilityEngine:
    def __init__(self, policy_store: BranchPolicyStore, assignment: TableAssignmentPolicy):
        self.policy_store = policy_store
        self.assignment = assignment
        self.settings = get_settings()

    def window_for(self, branch: BranchConfig, day: date, at: time) -> ReservationWindow:
        return ReservationWindow.starting_at(day, at, branch.reservation_policy.default_reservation_duration_minutes)

    async def _load_tables(self, db: AsyncSession, branch_id: int, party_size: int) -> list[Table]:
        result = await db.execute(
            select(Table).where(
                Table.branch_id == branch_id,
                Table.is_active.is_(True),
                Table.capacity >= party_size,
            )
        )
        return list(result.scalars().all())

    async def free_tables(
        self,
        db: AsyncSession,
        branch_id: int,
        window: ReservationWindow,
        party_size: int,
        preference: Optional[str] = None,
        exclude_booking_id: Optional[int] = None,
    ) -> list[Table]:
        """Ranked active tables seating the party with no overlapping confirmed booking."""
        tables = await self._load_tables(db, branch_id, party_size)
        if not tables:
            return []
        bookings = await load_confirmed_bookings(
            db,
            branch_id,
            window.start.date(),
            table_ids=[t.id for t in tables],
            exclude_booking_id=exclude_booking_id,
        )
        busy = busy_table_ids(bookings, window)
        return self.assignment.rank([t for t in tables if t.id not in busy], party_size, preference)

    async def get_available_tables(
        self,
        db: AsyncSession,
        branch_id: int,
        day: date,
        at: time,
        party_size: int,
        seating_preference: Optional[str] = None,
    ) -> list[Table]:
        branch = await self.policy_store.get_branch(db, branch_id)
        return await self.free_tables(db, branch_id, self.window_for(branch, day, at), party_size, seating_preference)

    async def is_table_available(
        self,
        db: AsyncSession,
        table: Table,
        window: ReservationWindow,
        party_size: int,
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[str]:
        """None when the table can host the party for the window, else the reason it cannot."""
        if not table.is_active:
            return f"Table {table.table_number} is not active"
        if table.capacity < party_size:
            return f"Table {table.table_number} seats {table.capacity}, party is {party_size}"
        bookings = await load_confirmed_bookings(
            db, table.branch_id, window.start.date(), table_ids=[table.id], exclude_booking_id=exclude_booking_id
        )
        if table.id in busy_table_ids(bookings, window):
            return f"Table {table.table_number} is already booked for this time"
        return None

    async def count_waitlisted(self, db: AsyncSession, branch_id: int, day: date) -> int:
        result = await db.execute(
            select(func.count(Booking.id)).where(
                Booking.branch_id == branch_id,
                Booking.booking_date == day,
                Booking.status == BookingStatus.WAITLISTED.value,
            )
        )
        return result.scalar_one()

    async def can_waitlist(self, db: AsyncSession, branch: BranchConfig, day: date) -> bool:
        policy = branch.reservation_policy
        if not policy.waitlist_enabled:
            return False
        return await self.count_waitlisted(db, branch.id, day) < policy.waitlist_max_size

    async def check_availability(
        self,
        db: AsyncSession,
        branch_id: int,
        day: date,
        at: time,
        party_size: int,
        seating_preference: Optional[str] = None,
    ) -> AvailabilityResult:
        started = perf_counter()
        branch = await self.policy_store.get_branch(db, branch_id)

        rejection = await self.policy_store.validate_request(db, branch, day, at, party_size)
        if rejection is not None:
            record_availability("rejected")
            logger.info("availability_rejected", branch_id=branch_id, date=day.isoformat(), reason=rejection.reason)
            return AvailabilityResult(available=False, reason_code=rejection.code, reason=rejection.reason)

        tables = await self.free_tables(db, branch_id, self.window_for(branch, day, at), party_size, seating_preference)
        availability_latency.labels(operation="check").observe(perf_counter() - started)

        if tables:
            record_availability("available")
            return AvailabilityResult(
                available=True,
                candidate_tables=[TableSummary.model_validate(t) for t in tables],
            )

        record_availability("unavailable")
        next_time = await self.find_next_available_time(db, branch_id, day, at, party_size)
        logger.info(
            "availability_no_tables",
            branch_id=branch_id,
            date=day.isoformat(),
            time=at.isoformat(),
            party_size=party_size,
            next_available_time=next_time.isoformat() if next_time else None,
        )
        return AvailabilityResult(
            available=False,
            reason_code=ErrorCode.NO_AVAILABILITY,
            reason="No tables available for the requested time",
            can_waitlist=await self.can_waitlist(db, branch, day),
            next_available_time=next_time,
        )

    async def _candidate_slots(
        self, db: AsyncSession, branch: BranchConfig, day: date
    ) -> list[tuple[time, Optional[str]]]:
        """(start time, slot name) pairs for the day, from slot definitions or branch hours."""
        buffer = self.settings.SLOT_CLOSING_BUFFER_MINUTES
        definitions = await self.policy_store.get_time_slots(db, branch.id, day)
        if definitions:
            slots = []
            for definition in definitions:
                for at in generate_slots(
                    definition.start_time, definition.end_time, definition.booking_interval_minutes, buffer
                ):
                    slots.append((at, definition.slot_name))
            return sorted(set(slots), key=lambda s: s[0])

        hours = branch.hours_for(day)
        if hours is None:
            return []
        interval = branch.reservation_policy.booking_interval_minutes
        return [(at, None) for at in generate_slots(hours.open, hours.close, interval, buffer)]

    async def _day_availability(
        self, db: AsyncSession, branch: BranchConfig, day: date, party_size: int
    ) -> DayAvailability:
        blackouts = await self.policy_store.get_blackouts(db, branch.id, day)
        full_day = next((b for b in blackouts if b.is_full_day), None)
        if full_day is not None:
            return DayAvailability(date=day, available=False, reason=full_day.reason or "Blackout date")

        slots = await self._candidate_slots(db, branch, day)
        if not slots:
            return DayAvailability(date=day, available=False, reason="Closed")

        tables = await self._load_tables(db, branch.id, party_size)
        bookings = await load_confirmed_bookings(db, branch.id, day, table_ids=[t.id for t in tables]) if tables else []
        duration = branch.reservation_policy.default_reservation_duration_minutes

        results = []
        for at, slot_name in slots:
            results.append(self._slot_availability(branch, day, at, slot_name, duration, tables, bookings, blackouts))

        return DayAvailability(date=day, available=any(s.available for s in results), slots=results)

    def _slot_availability(
        self,
        branch: BranchConfig,
        day: date,
        at: time,
        slot_name: Optional[str],
        duration: int,
        tables: list[Table],
        bookings: list[Booking],
        blackouts: list[BlackoutWindow],
    ) -> SlotAvailability:
        blackout = next((b for b in blackouts if b.covers(at)), None)
        if blackout is not None:
            return SlotAvailability(time=at, available=False, slot_name=slot_name, reason=blackout.reason or "Blackout")

        rejection = self.policy_store.check_booking_window(branch, day, at)
        if rejection is not None:
            return SlotAvailability(time=at, available=False, slot_name=slot_name, reason=rejection.reason)

        busy = busy_table_ids(bookings, ReservationWindow.starting_at(day, at, duration))
        free = sum(1 for t in tables if t.id not in busy)
        return SlotAvailability(
            time=at,
            available=free > 0,
            tables_available=free,
            slot_name=slot_name,
            reason=None if free else "Fully booked",
        )

    async def get_availability_for_range(
        self,
        db: AsyncSession,
        branch_id: int,
        start_date: date,
        end_date: date,
        party_size: int,
    ) -> RangeAvailability:
        if end_date < start_date:
            raise PolicyViolationError(
                "end_date must not be before start_date",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        started = perf_counter()
        branch = await self.policy_store.get_branch(db, branch_id)
        if not branch.reservation_policy.enabled:
            raise PolicyViolationError("This branch does not accept reservations", details={"branch_id": branch_id})
        rejection = self.policy_store.check_party_size(branch, party_size)
        if rejection is not None:
            raise rejection.to_error(party_size=party_size)

        max_days = self.settings.MAX_AVAILABILITY_RANGE_DAYS
        capped_end = min(end_date, start_date + timedelta(days=max_days - 1))

        cached = await cache_service.get_cached_range(branch_id, start_date, capped_end, party_size)
        if cached is not None:
            return RangeAvailability.model_validate({**cached, "cached": True, "truncated": capped_end < end_date})

        days = []
        current = start_date
        while current <= capped_end:
            days.append(await self._day_availability(db, branch, current, party_size))
            current += timedelta(days=1)

        result = RangeAvailability(
            branch_id=branch_id,
            party_size=party_size,
            start_date=start_date,
            end_date=capped_end,
            truncated=capped_end < end_date,
            days=days,
        )
        availability_latency.labels(operation="range").observe(perf_counter() - started)
        await cache_service.set_cached_range(branch_id, start_date, capped_end, party_size, result.model_dump(mode="json"))
        return result

    async def find_next_available_time(
        self,
        db: AsyncSession,
        branch_id: int,
        day: date,
        from_time: time,
        party_size: int,
    ) -> Optional[time]:
        """First bookable slot on `day` strictly after `from_time` with a free table."""
        started = perf_counter()
        branch = await self.policy_store.get_branch(db, branch_id)
        blackouts = await self.policy_store.get_blackouts(db, branch_id, day)
        if any(b.is_full_day for b in blackouts):
            return None

        tables = await self._load_tables(db, branch_id, party_size)
        if not tables:
            return None
        bookings = await load_confirmed_bookings(db, branch_id, day, table_ids=[t.id for t in tables])
        duration = branch.reservation_policy.default_reservation_duration_minutes

        try:
            for at, _ in await self._candidate_slots(db, branch, day):
                if at <= from_time:
                    continue
                if any(b.covers(at) for b in blackouts):
                    continue
                if datetime.combine(day, at) <= self.policy_store.local_now(branch):
                    continue
                busy = busy_table_ids(bookings, ReservationWindow.starting_at(day, at, duration))
                if any(t.id not in busy for t in tables):
                    return at
            return None
        finally:
            availability_latency.labels(operation="next").observe(perf_counter() - started)
