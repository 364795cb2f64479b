"""
Waitlist coordinator.

WAITLIST ORDERING
=================

Positions are per (branch, date) partition and always contiguous from 1:
whenever a booking leaves the waitlist (approved, denied, cancelled,
promoted) everything behind it moves up in the same transaction, and manual
moves shift the intervening range the other way.

Two requests joining the same partition at the same moment would otherwise
both read max(position) = 4 and both take 5. On PostgreSQL every
position-changing operation first takes a transaction-scoped advisory lock
keyed by (branch, date), so partitions are serialized while different dates
or branches proceed in parallel. Other dialects (SQLite in tests) have no
concurrent writers and skip the lock.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservation_engine.core.clock import Clock
from reservation_engine.core.errors import (
    InvalidStateTransitionError,
    NoAvailabilityError,
    NotFoundError,
    WaitlistFullError,
)
from reservation_engine.core.logging import get_logger
from reservation_engine.core.metrics import record_transition, record_waitlist_change, waitlist_size
from reservation_engine.db.unit_of_work import UnitOfWork, unit_of_work
from reservation_engine.models.booking import Booking, BookingStatus, CONFIRMED_STATUSES
from reservation_engine.models.table import Table
from reservation_engine.schemas.events import SYSTEM_ACTOR, Actor, LifecycleEventType
from reservation_engine.schemas.policy import BranchConfig
from reservation_engine.schemas.waitlist import MoveDirection, WaitlistStatus
from reservation_engine.services.availability_service import AvailabilityEngine
from reservation_engine.services.event_bus import EventBus, booking_event
from reservation_engine.services.policy_store import BranchPolicyStore
from reservation_engine.services.scheduling import ReservationWindow, load_booking, load_confirmed_bookings
from reservation_engine.services.table_assignment import TableAssignmentPolicy

logger = get_logger(__name__)


def partition_lock_key(branch_id: int, day: date) -> int:
    return branch_id * 1_000_000 + day.toordinal()


async def lock_partition(db: AsyncSession, branch_id: int, day: date) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": partition_lock_key(branch_id, day)})


def _waitlisted(branch_id: int, day: date):
    return (
        Booking.branch_id == branch_id,
        Booking.booking_date == day,
        Booking.status == BookingStatus.WAITLISTED.value,
    )


class WaitlistCoordinator:
    def __init__(
        self,
        policy_store: BranchPolicyStore,
        availability: AvailabilityEngine,
        assignment: TableAssignmentPolicy,
        clock: Clock,
        session_factory: async_sessionmaker[AsyncSession],
        event_bus: Optional[EventBus] = None,
    ):
        self.policy_store = policy_store
        self.availability = availability
        self.assignment = assignment
        self.clock = clock
        self.session_factory = session_factory
        self.event_bus = event_bus

    # ==================== Partition primitives (caller's transaction) ====================

    async def check_waitlist_status(
        self, db: AsyncSession, branch: BranchConfig, day: date, at: time, party_size: int
    ) -> WaitlistStatus:
        """
        Position a new request would take, or not waitlisted when a table is free.

        Takes the partition lock, so the returned position stays valid until
        the caller's transaction ends.
        """
        window = self.availability.window_for(branch, day, at)
        if await self.availability.free_tables(db, branch.id, window, party_size):
            return WaitlistStatus(is_waitlisted=False)

        await lock_partition(db, branch.id, day)
        result = await db.execute(
            select(func.count(Booking.id), func.max(Booking.waitlist_position)).where(*_waitlisted(branch.id, day))
        )
        count, max_position = result.one()

        limit = branch.reservation_policy.waitlist_max_size
        if count >= limit:
            logger.warning("waitlist_full", branch_id=branch.id, date=day.isoformat(), size=count, limit=limit)
            raise WaitlistFullError(
                "The waitlist for this date is full",
                details={"branch_id": branch.id, "date": day.isoformat(), "waitlist_max_size": limit},
            )

        return WaitlistStatus(is_waitlisted=True, position=(max_position or 0) + 1)

    async def reorder_waitlist(
        self, db: AsyncSession, branch_id: int, day: date, from_position: int = 1
    ) -> list[Booking]:
        """
        Renumber waitlisted bookings at or after `from_position` so positions
        run contiguously from it, keeping their order. Returns the bookings
        whose position changed.
        """
        await lock_partition(db, branch_id, day)
        result = await db.execute(
            select(Booking)
            .where(*_waitlisted(branch_id, day), Booking.waitlist_position >= from_position)
            .order_by(Booking.waitlist_position.asc(), Booking.id.asc())
            .with_for_update()
        )
        changed = []
        for offset, booking in enumerate(result.scalars().all()):
            position = from_position + offset
            if booking.waitlist_position != position:
                booking.waitlist_position = position
                changed.append(booking)

        record_waitlist_change("reordered", len(changed))
        return changed

    async def leave_waitlist(
        self, db: AsyncSession, booking: Booking, status: BookingStatus
    ) -> list[Booking]:
        """
        Move a waitlisted booking to `status` and close the gap it leaves.

        Anything else the new status needs (a table for approved) must be set
        on the booking before calling, since the reorder query flushes it.
        """
        old_position = booking.waitlist_position
        booking.status = status.value
        booking.leave_waitlist()
        return await self.reorder_waitlist(db, booking.branch_id, booking.booking_date, old_position)

    async def get_waitlist(
        self, db: AsyncSession, branch_id: int, day: Optional[date] = None
    ) -> list[Booking]:
        query = select(Booking).where(
            Booking.branch_id == branch_id,
            Booking.status == BookingStatus.WAITLISTED.value,
        )
        if day is not None:
            query = query.where(Booking.booking_date == day)
        result = await db.execute(
            query.order_by(Booking.booking_date.asc(), Booking.waitlist_position.asc())
        )
        return list(result.scalars().all())

    def record_position_changes(self, uow: UnitOfWork, bookings: list[Booking], actor: Actor) -> None:
        now = self.clock.now()
        for booking in bookings:
            uow.record(booking_event(booking, LifecycleEventType.WAITLIST_POSITION_CHANGED, actor, now))

    # ==================== Operations (own transaction) ====================

    async def move_in_waitlist(
        self, booking_id: int, direction: MoveDirection, steps: int = 1, actor: Actor = SYSTEM_ACTOR
    ) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            booking = await load_booking(db, booking_id, lock=True)
            if booking.status != BookingStatus.WAITLISTED.value:
                raise InvalidStateTransitionError(
                    f"Booking {booking.reference} is not on the waitlist",
                    details={"booking_id": booking_id, "status": booking.status},
                )

            await lock_partition(db, booking.branch_id, booking.booking_date)
            result = await db.execute(
                select(func.max(Booking.waitlist_position)).where(*_waitlisted(booking.branch_id, booking.booking_date))
            )
            max_position = result.scalar_one()

            current = booking.waitlist_position
            if direction == MoveDirection.UP:
                target = max(1, current - steps)
            else:
                target = min(max_position, current + steps)
            if target == current:
                return booking

            if target < current:
                between, shift = (Booking.waitlist_position >= target, Booking.waitlist_position < current), 1
            else:
                between, shift = (Booking.waitlist_position > current, Booking.waitlist_position <= target), -1
            result = await db.execute(
                select(Booking)
                .where(*_waitlisted(booking.branch_id, booking.booking_date), Booking.id != booking.id, *between)
                .with_for_update()
            )
            shifted = list(result.scalars().all())
            for other in shifted:
                other.waitlist_position += shift
            booking.waitlist_position = target

            self.record_position_changes(uow, [booking, *shifted], actor)
            record_waitlist_change("moved", len(shifted) + 1)
            logger.info(
                "waitlist_moved",
                booking_id=booking.id,
                from_position=current,
                to_position=target,
                shifted=len(shifted),
            )
            return booking

    async def update_estimated_wait_times(self, branch_id: int, day: date) -> int:
        """Simple estimate: position x the branch's average wait per party."""
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            branch = await self.policy_store.get_branch(db, branch_id)
            average = branch.reservation_policy.average_wait_time_minutes
            waitlist = await self.get_waitlist(db, branch_id, day)
            for booking in waitlist:
                booking.estimated_wait_minutes = booking.waitlist_position * average

        waitlist_size.labels(branch_id=str(branch_id)).set(len(waitlist))
        logger.info("waitlist_estimates_updated", branch_id=branch_id, date=day.isoformat(), mode="simple", count=len(waitlist))
        return len(waitlist)

    async def update_expected_seating_times(self, branch_id: int, day: date) -> int:
        """
        Turnover estimate: simulate every active table freeing up.

        Each table starts free now (branch-local), or when its current
        confirmed booking ends plus the turnover buffer. Waitlisted parties,
        in position order, take the earliest-freeing table that seats them
        and hold it for their own dining time plus the buffer. Parties no
        table can seat get no estimate.
        """
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            branch = await self.policy_store.get_branch(db, branch_id)
            turnover = timedelta(minutes=branch.reservation_policy.turnover_buffer_minutes)
            now = self.policy_store.local_now(branch)

            result = await db.execute(
                select(Table).where(Table.branch_id == branch_id, Table.is_active.is_(True))
            )
            tables = list(result.scalars().all())
            free_at: dict[int, datetime] = {t.id: now for t in tables}
            capacity = {t.id: t.capacity for t in tables}

            for booking in sorted(await load_confirmed_bookings(db, branch_id, day), key=lambda b: b.starts_at):
                if booking.table_id in free_at and booking.ends_at > now:
                    free_at[booking.table_id] = max(free_at[booking.table_id], booking.ends_at + turnover)

            # Confirmed parties still waiting for a table take the earliest one.
            result = await db.execute(
                select(Booking)
                .where(
                    Booking.branch_id == branch_id,
                    Booking.booking_date == day,
                    Booking.status.in_(CONFIRMED_STATUSES),
                    Booking.table_id.is_(None),
                )
                .order_by(Booking.booking_time.asc(), Booking.id.asc())
            )
            for booking in result.scalars().all():
                if booking.ends_at <= now:
                    continue
                fitting = [tid for tid in free_at if capacity[tid] >= booking.party_size]
                if fitting:
                    tid = min(fitting, key=lambda t: (free_at[t], t))
                    free_at[tid] = max(free_at[tid], booking.starts_at) + timedelta(
                        minutes=booking.duration_minutes
                    ) + turnover

            waitlist = await self.get_waitlist(db, branch_id, day)
            for booking in waitlist:
                fitting = [tid for tid in free_at if capacity[tid] >= booking.party_size]
                if not fitting:
                    booking.estimated_wait_minutes = None
                    continue
                tid = min(fitting, key=lambda t: (free_at[t], t))
                seated_at = free_at[tid]
                booking.estimated_wait_minutes = max(0, round((seated_at - now).total_seconds() / 60))
                free_at[tid] = seated_at + timedelta(minutes=booking.duration_minutes) + turnover

        waitlist_size.labels(branch_id=str(branch_id)).set(len(waitlist))
        logger.info(
            "waitlist_estimates_updated", branch_id=branch_id, date=day.isoformat(), mode="turnover", count=len(waitlist)
        )
        return len(waitlist)

    async def process_next_waitlist(
        self, branch_id: int, day: date, at: time, actor: Actor = SYSTEM_ACTOR
    ) -> Booking:
        """Promote the first waitlisted booking for the slot onto a free table."""
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            await self.policy_store.get_branch(db, branch_id)
            await lock_partition(db, branch_id, day)

            result = await db.execute(
                select(Booking)
                .where(*_waitlisted(branch_id, day), Booking.booking_time == at)
                .order_by(Booking.waitlist_position.asc())
                .limit(1)
                .with_for_update()
            )
            booking = result.scalar_one_or_none()
            if booking is None:
                raise NotFoundError(
                    "No waitlisted bookings for this slot",
                    details={"branch_id": branch_id, "date": day.isoformat(), "time": at.strftime("%H:%M")},
                )

            window = ReservationWindow.of(booking)
            candidates = await self.availability.free_tables(
                db, branch_id, window, booking.party_size, booking.seating_preference
            )
            table = await self.assignment.assign(db, candidates, window, exclude_booking_id=booking.id)
            if table is None:
                record_transition("promote", "rejected")
                raise NoAvailabilityError(
                    "No table is free for the next waitlisted booking",
                    details={"booking_id": booking.id, "party_size": booking.party_size},
                )

            now = self.clock.now()
            old_position = booking.waitlist_position
            booking.table_id = table.id
            booking.status_reason = "Promoted from waitlist"
            booking.modified_at = now
            booking.modified_by = actor.id
            changed = await self.leave_waitlist(db, booking, BookingStatus.APPROVED)

            uow.record(
                booking_event(booking, LifecycleEventType.WAITLIST_PROMOTED, actor, now, previous_position=old_position)
            )
            self.record_position_changes(uow, changed, actor)

        record_transition("promote", "success")
        record_waitlist_change("promoted")
        logger.info("waitlist_promoted", booking_id=booking.id, table_id=booking.table_id, previous_position=old_position)
        return booking

    async def notify_waitlisted_customers(self, branch_id: int, day: date, at: time) -> list[Booking]:
        """
        Tell the front of the slot's waitlist that tables are free.

        Up to one booking per free table is flagged with a response deadline;
        the message itself goes out through the event bus.
        """
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            branch = await self.policy_store.get_branch(db, branch_id)
            window = self.availability.window_for(branch, day, at)
            free = await self.availability.free_tables(db, branch_id, window, party_size=1)
            if not free:
                return []

            result = await db.execute(
                select(Booking)
                .where(*_waitlisted(branch_id, day), Booking.booking_time == at)
                .order_by(Booking.waitlist_position.asc())
                .limit(len(free))
            )
            notified = list(result.scalars().all())

            now = self.clock.now()
            deadline = now + timedelta(minutes=branch.reservation_policy.waitlist_response_window_minutes)
            for booking in notified:
                booking.notification_status = "sent"
                booking.last_notified_at = now
                booking.action_deadline = deadline
                uow.record(
                    booking_event(
                        booking,
                        LifecycleEventType.WAITLIST_TABLE_AVAILABLE,
                        SYSTEM_ACTOR,
                        now,
                        deadline=deadline.isoformat(),
                        tables_available=len(free),
                    )
                )

        record_waitlist_change("notified", len(notified))
        logger.info(
            "waitlist_notified", branch_id=branch_id, date=day.isoformat(), time=at.strftime("%H:%M"), count=len(notified)
        )
        return notified
