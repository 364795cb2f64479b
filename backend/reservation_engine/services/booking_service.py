"""
Booking lifecycle manager.

STATE MACHINE
=============

    pending ----approve----> approved --seat--> seated --complete--> completed
       |                       ^  |
       +--deny--> denied       |  arrive (stays approved, records arrival)
       |                    approve
       |                       |
       |                   waitlisted --deny--> denied
       |
       +--cancel (from any non-terminal state)--> cancelled

Terminal: denied, completed, cancelled. Any other transition raises
InvalidStateTransitionError and changes nothing.

Every operation runs in one unit of work. Where several rows change together
(a waitlist shift after approval, an old table released on reseating) they
commit or roll back as a whole, and lifecycle events go out only after the
commit.
"""

import functools
import secrets
from datetime import date
from typing import Iterable, NoReturn, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservation_engine.core.clock import Clock
from reservation_engine.core.config import get_settings
from reservation_engine.core.errors import (
    ErrorCode,
    InternalError,
    InvalidStateTransitionError,
    NoAvailabilityError,
    NotFoundError,
    PolicyViolationError,
    ReservationError,
    TableUnavailableError,
    WaitlistFullError,
)
from reservation_engine.core.logging import get_logger, reservation_context
from reservation_engine.core.metrics import record_transition, record_waitlist_change
from reservation_engine.db.unit_of_work import unit_of_work
from reservation_engine.models.booking import TERMINAL_STATUSES, Booking, BookingStatus
from reservation_engine.models.table import Table, TableStatus
from reservation_engine.schemas.booking import BookingRequest
from reservation_engine.schemas.events import Actor, ActorRole, LifecycleEventType
from reservation_engine.services.availability_service import AvailabilityEngine
from reservation_engine.services.event_bus import EventBus, booking_event
from reservation_engine.services.interfaces import CustomerDirectory
from reservation_engine.services.policy_store import BranchPolicyStore
from reservation_engine.services.scheduling import ReservationWindow, load_booking
from reservation_engine.services.table_assignment import TableAssignmentPolicy
from reservation_engine.services.waitlist_service import WaitlistCoordinator

logger = get_logger(__name__)

CANCELLABLE_STATUSES = frozenset(BookingStatus) - TERMINAL_STATUSES


def tracked(transition: str):
    """
    Count the outcome of a lifecycle operation (success, rejected or error) and
    bind the operation and its booking or branch to the logs emitted meanwhile.
    """

    def decorator(func_):
        @functools.wraps(func_)
        async def wrapper(self, target, *args, **kwargs):
            if isinstance(target, BookingRequest):
                context = reservation_context(transition, branch_id=target.branch_id)
            else:
                context = reservation_context(transition, booking_id=target)
            try:
                with context:
                    result = await func_(self, target, *args, **kwargs)
            except InternalError:
                record_transition(transition, "error")
                raise
            except ReservationError:
                record_transition(transition, "rejected")
                raise
            record_transition(transition, "success")
            return result

        return wrapper

    return decorator


class BookingLifecycleManager:
    def __init__(
        self,
        policy_store: BranchPolicyStore,
        availability: AvailabilityEngine,
        assignment: TableAssignmentPolicy,
        waitlist: WaitlistCoordinator,
        customers: CustomerDirectory,
        clock: Clock,
        session_factory: async_sessionmaker[AsyncSession],
        event_bus: Optional[EventBus] = None,
    ):
        self.policy_store = policy_store
        self.availability = availability
        self.assignment = assignment
        self.waitlist = waitlist
        self.customers = customers
        self.clock = clock
        self.session_factory = session_factory
        self.event_bus = event_bus
        self.settings = get_settings()

    # ==================== Helpers ====================

    @staticmethod
    def _reject(booking: Booking, allowed: Iterable[BookingStatus], action: str) -> NoReturn:
        logger.warning("invalid_state_transition", booking_id=booking.id, status=booking.status, action=action)
        raise InvalidStateTransitionError(
            f"Cannot {action} a booking that is {booking.status}",
            details={
                "booking_id": booking.id,
                "status": booking.status,
                "allowed": sorted(s.value for s in allowed),
            },
        )

    @classmethod
    def _require(cls, booking: Booking, allowed: set[BookingStatus], action: str) -> None:
        if BookingStatus(booking.status) not in allowed:
            cls._reject(booking, allowed, action)

    async def _generate_reference(self, db: AsyncSession, branch_id: int) -> str:
        for _ in range(self.settings.REFERENCE_GENERATION_ATTEMPTS):
            stamp = int(self.clock.now().timestamp() * 1000) % 1_000_000
            reference = f"B{branch_id}-{stamp:06d}{secrets.randbelow(1000):03d}"
            result = await db.execute(
                select(Booking.id).where(Booking.branch_id == branch_id, Booking.reference == reference)
            )
            if result.scalar_one_or_none() is None:
                return reference
        raise InternalError("Could not generate a unique booking reference", details={"branch_id": branch_id})

    @staticmethod
    def _check_in_code() -> str:
        return f"{secrets.randbelow(1_000_000):06d}"

    async def _claim_explicit_table(
        self, db: AsyncSession, booking: Booking, table_id: int, window: ReservationWindow
    ) -> Table:
        """Validate and claim a staff-chosen table for the booking's window."""
        table = await db.get(Table, table_id)
        if table is None or table.branch_id != booking.branch_id:
            raise NotFoundError(
                f"Table {table_id} not found at this branch",
                details={"table_id": table_id, "branch_id": booking.branch_id},
            )

        reason = await self.availability.is_table_available(
            db, table, window, booking.party_size, exclude_booking_id=booking.id
        )
        if reason:
            raise TableUnavailableError(reason, details={"table_id": table_id, "booking_id": booking.id})

        claimed = await self.assignment.claim(db, table.id, window, exclude_booking_id=booking.id)
        if claimed is None:
            raise TableUnavailableError(
                f"Table {table.table_number} was just assigned to another booking",
                details={"table_id": table_id, "booking_id": booking.id},
            )
        return claimed

    async def _auto_assign(self, db: AsyncSession, booking: Booking, window: ReservationWindow) -> Optional[Table]:
        candidates = await self.availability.free_tables(
            db,
            booking.branch_id,
            window,
            booking.party_size,
            booking.seating_preference,
            exclude_booking_id=booking.id,
        )
        return await self.assignment.assign(db, candidates, window, exclude_booking_id=booking.id)

    # ==================== Creation ====================

    @tracked("create")
    async def create_booking(self, request: BookingRequest, actor: Optional[Actor] = None) -> Booking:
        actor = actor or Actor(id=request.customer_id, role=ActorRole.CUSTOMER)

        customer = await self.customers.get_customer(request.customer_id)
        if customer is None:
            raise NotFoundError(
                f"Customer {request.customer_id} not found", details={"customer_id": request.customer_id}
            )

        preference = request.seating_preference.value if request.seating_preference else None

        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            branch = await self.policy_store.get_branch(db, request.branch_id)
            policy = branch.reservation_policy

            result = await self.availability.check_availability(
                db, request.branch_id, request.booking_date, request.booking_time, request.party_size, preference
            )
            if not result.available and result.reason_code == ErrorCode.POLICY_VIOLATION:
                raise PolicyViolationError(
                    result.reason,
                    details={
                        "branch_id": request.branch_id,
                        "date": request.booking_date.isoformat(),
                        "time": request.booking_time.strftime("%H:%M"),
                        "party_size": request.party_size,
                    },
                )

            now = self.clock.now()
            window = self.availability.window_for(branch, request.booking_date, request.booking_time)
            booking = Booking(
                branch_id=request.branch_id,
                customer_id=request.customer_id,
                reference=await self._generate_reference(db, request.branch_id),
                booking_date=request.booking_date,
                booking_time=request.booking_time,
                duration_minutes=policy.default_reservation_duration_minutes,
                party_size=request.party_size,
                seating_preference=preference,
                special_requests=request.special_requests,
                occasion=request.occasion,
                source=request.source,
                check_in_code=self._check_in_code(),
                status=BookingStatus.PENDING.value,
            )

            seated_now = result.available
            if result.available and not policy.requires_approval:
                table = None
                if policy.auto_assign_tables:
                    table = await self.assignment.assign(db, result.candidate_tables, window)
                    # Every candidate lost to concurrent bookings: fall through to the waitlist.
                    seated_now = table is not None
                if seated_now:
                    booking.status = BookingStatus.APPROVED.value
                    booking.table_id = table.id if table else None

            if not seated_now:
                if not policy.waitlist_enabled:
                    raise NoAvailabilityError(
                        "No tables available and the waitlist is disabled",
                        details={
                            "reason": "no_tables",
                            "next_available_time": (
                                result.next_available_time.strftime("%H:%M") if result.next_available_time else None
                            ),
                        },
                    )
                try:
                    status = await self.waitlist.check_waitlist_status(
                        db, branch, request.booking_date, request.booking_time, request.party_size
                    )
                except WaitlistFullError as e:
                    raise NoAvailabilityError(
                        "No tables available and the waitlist is full",
                        details={
                            "reason": "waitlist_full",
                            "next_available_time": (
                                result.next_available_time.strftime("%H:%M") if result.next_available_time else None
                            ),
                            **e.details,
                        },
                    ) from e

                if status.is_waitlisted:
                    booking.status = BookingStatus.WAITLISTED.value
                    booking.waitlist_position = status.position
                    booking.waitlisted_at = now
                    booking.estimated_wait_minutes = status.position * policy.average_wait_time_minutes

            db.add(booking)
            await db.flush()

            uow.record(booking_event(booking, LifecycleEventType.BOOKING_CREATED, actor, now))
            if booking.status == BookingStatus.WAITLISTED.value:
                uow.record(booking_event(booking, LifecycleEventType.BOOKING_WAITLISTED, actor, now))
            elif booking.status == BookingStatus.APPROVED.value:
                uow.record(booking_event(booking, LifecycleEventType.BOOKING_APPROVED, actor, now))

        if booking.status == BookingStatus.WAITLISTED.value:
            record_waitlist_change("added")
        logger.info(
            "booking_created",
            booking_id=booking.id,
            reference=booking.reference,
            branch_id=booking.branch_id,
            status=booking.status,
            table_id=booking.table_id,
            waitlist_position=booking.waitlist_position,
            party_size=booking.party_size,
        )
        return booking

    # ==================== Staff decisions ====================

    @tracked("approve")
    async def approve_booking(
        self, booking_id: int, actor: Actor, table_id: Optional[int] = None, notes: Optional[str] = None
    ) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            booking = await load_booking(db, booking_id, lock=True)
            self._require(booking, {BookingStatus.PENDING, BookingStatus.WAITLISTED}, "approve")
            branch = await self.policy_store.get_branch(db, booking.branch_id)
            window = ReservationWindow.of(booking)

            table = None
            if table_id is not None:
                table = await self._claim_explicit_table(db, booking, table_id, window)
            elif branch.reservation_policy.auto_assign_tables:
                table = await self._auto_assign(db, booking, window)
                if table is None:
                    raise TableUnavailableError(
                        "No table is free for this booking's time",
                        details={"booking_id": booking.id, "party_size": booking.party_size},
                    )

            now = self.clock.now()
            previous = booking.status
            booking.table_id = table.id if table else None
            booking.status_reason = notes
            booking.modified_at = now
            booking.modified_by = actor.id

            changed = []
            if previous == BookingStatus.WAITLISTED.value:
                changed = await self.waitlist.leave_waitlist(db, booking, BookingStatus.APPROVED)
            else:
                booking.status = BookingStatus.APPROVED.value

            uow.record(booking_event(booking, LifecycleEventType.BOOKING_APPROVED, actor, now, previous_status=previous))
            self.waitlist.record_position_changes(uow, changed, actor)

        logger.info("booking_approved", booking_id=booking.id, table_id=booking.table_id, previous_status=previous)
        return booking

    @tracked("deny")
    async def deny_booking(self, booking_id: int, reason: str, actor: Actor) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            booking = await load_booking(db, booking_id, lock=True)
            self._require(booking, {BookingStatus.PENDING, BookingStatus.WAITLISTED}, "deny")

            now = self.clock.now()
            booking.status_reason = reason
            booking.modified_at = now
            booking.modified_by = actor.id

            changed = []
            if booking.status == BookingStatus.WAITLISTED.value:
                changed = await self.waitlist.leave_waitlist(db, booking, BookingStatus.DENIED)
            else:
                booking.status = BookingStatus.DENIED.value

            uow.record(booking_event(booking, LifecycleEventType.BOOKING_DENIED, actor, now, reason=reason))
            self.waitlist.record_position_changes(uow, changed, actor)

        logger.info("booking_denied", booking_id=booking.id, reason=reason)
        return booking

    @tracked("cancel")
    async def cancel_booking(self, booking_id: int, reason: Optional[str], actor: Actor) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            booking = await load_booking(db, booking_id, lock=True)
            if booking.is_terminal:
                self._reject(booking, CANCELLABLE_STATUSES, "cancel")
            branch = await self.policy_store.get_branch(db, booking.branch_id)

            late = False
            if actor.role == ActorRole.CUSTOMER:
                if not branch.reservation_policy.allow_cancellations:
                    raise PolicyViolationError(
                        "This branch does not allow customers to cancel bookings",
                        details={"booking_id": booking.id, "branch_id": booking.branch_id},
                    )
                late = self.policy_store.is_late_cancellation(branch, booking.booking_date, booking.booking_time)

            released = booking.table_id
            if released is not None and booking.status == BookingStatus.SEATED.value:
                table = await db.get(Table, released)
                if table is not None:
                    table.status = TableStatus.AVAILABLE

            now = self.clock.now()
            previous = booking.status
            booking.table_id = None
            booking.status_reason = reason
            booking.cancelled_by_role = actor.role.value
            booking.late_cancellation = late
            booking.modified_at = now
            booking.modified_by = actor.id

            changed = []
            if previous == BookingStatus.WAITLISTED.value:
                changed = await self.waitlist.leave_waitlist(db, booking, BookingStatus.CANCELLED)
            else:
                booking.status = BookingStatus.CANCELLED.value

            uow.record(
                booking_event(
                    booking,
                    LifecycleEventType.BOOKING_CANCELLED,
                    actor,
                    now,
                    previous_status=previous,
                    released_table_id=released,
                    late_cancellation=late,
                )
            )
            self.waitlist.record_position_changes(uow, changed, actor)

        logger.info(
            "booking_cancelled",
            booking_id=booking.id,
            previous_status=previous,
            released_table_id=released,
            cancelled_by=actor.role.value,
            late_cancellation=late,
        )
        return booking

    # ==================== Service flow ====================

    @tracked("arrive")
    async def mark_arrived(self, booking_id: int, actor: Actor) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            booking = await load_booking(uow.session, booking_id, lock=True)
            self._require(booking, {BookingStatus.APPROVED}, "mark arrived")

            now = self.clock.now()
            if booking.arrived_at is None:
                booking.arrived_at = now
            booking.modified_at = now
            booking.modified_by = actor.id
            uow.record(booking_event(booking, LifecycleEventType.CUSTOMER_ARRIVED, actor, now))

        logger.info("customer_arrived", booking_id=booking.id)
        return booking

    @tracked("seat")
    async def mark_seated(self, booking_id: int, actor: Actor, table_id: Optional[int] = None) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            booking = await load_booking(db, booking_id, lock=True)
            self._require(booking, {BookingStatus.APPROVED}, "seat")
            window = ReservationWindow.of(booking)
            previous_table = booking.table_id

            if table_id is not None and table_id != booking.table_id:
                # Reassignment: the booking stops holding its old table once it
                # points at the new one, within this same transaction.
                table = await self._claim_explicit_table(db, booking, table_id, window)
            elif booking.table_id is not None:
                table = await db.get(Table, booking.table_id)
            else:
                table = await self._auto_assign(db, booking, window)
                if table is None:
                    raise TableUnavailableError(
                        "No table is free to seat this booking",
                        details={"booking_id": booking.id, "party_size": booking.party_size},
                    )

            now = self.clock.now()
            table.status = TableStatus.OCCUPIED
            booking.table_id = table.id
            booking.status = BookingStatus.SEATED.value
            booking.seated_at = now
            if booking.arrived_at is None:
                booking.arrived_at = now
            booking.modified_at = now
            booking.modified_by = actor.id

            uow.record(
                booking_event(
                    booking, LifecycleEventType.CUSTOMER_SEATED, actor, now, previous_table_id=previous_table
                )
            )

        logger.info("customer_seated", booking_id=booking.id, table_id=booking.table_id, previous_table_id=previous_table)
        return booking

    @tracked("complete")
    async def complete_booking(self, booking_id: int, actor: Actor) -> Booking:
        async with unit_of_work(self.session_factory, self.event_bus) as uow:
            db = uow.session
            booking = await load_booking(db, booking_id, lock=True)
            self._require(booking, {BookingStatus.SEATED}, "complete")

            if booking.table_id is not None:
                table = await db.get(Table, booking.table_id)
                if table is not None:
                    table.status = TableStatus.AVAILABLE

            now = self.clock.now()
            booking.status = BookingStatus.COMPLETED.value
            booking.departed_at = now
            booking.modified_at = now
            booking.modified_by = actor.id
            uow.record(booking_event(booking, LifecycleEventType.BOOKING_COMPLETED, actor, now))

        logger.info("booking_completed", booking_id=booking.id, table_id=booking.table_id)
        return booking

    # ==================== Queries ====================

    async def get_booking(self, booking_id: int) -> Booking:
        async with self.session_factory() as db:
            return await load_booking(db, booking_id)

    async def list_bookings(
        self,
        branch_id: int,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        """Bookings for a branch ordered by date and time, plus the total count."""
        filters = [Booking.branch_id == branch_id]
        if booking_date is not None:
            filters.append(Booking.booking_date == booking_date)
        if status is not None:
            filters.append(Booking.status == BookingStatus(status).value)

        async with self.session_factory() as db:
            total = (await db.execute(select(func.count(Booking.id)).where(*filters))).scalar_one()
            result = await db.execute(
                select(Booking)
                .where(*filters)
                .order_by(Booking.booking_date.asc(), Booking.booking_time.asc(), Booking.id.asc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all()), total
