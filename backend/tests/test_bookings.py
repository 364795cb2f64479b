"""
Tests for the booking lifecycle: creation outcomes, staff decisions and service flow.
"""

import warnings
from datetime import date, time
from pathlib import Path

import pytest
import structlog

from reservation_engine.core.errors import (
    InvalidStateTransitionError,
    NotFoundError,
    PolicyViolationError,
    TableUnavailableError,
)
from reservation_engine.models import BookingStatus
from reservation_engine.models.table import TableStatus
from reservation_engine.schemas.booking import BookingRequest
from reservation_engine.schemas.events import Actor, ActorRole
from reservation_engine.services import booking_service
from reservation_engine.services.container import build_services

from conftest import TOMORROW, FakeCustomerDirectory

STAFF = Actor(id=77, role=ActorRole.STAFF)
CUSTOMER = Actor(id=1, role=ActorRole.CUSTOMER)


def request_for(branch_id, at=time(19, 0), party_size=2, customer_id=1, day=TOMORROW, **extra):
    return BookingRequest(
        branch_id=branch_id,
        customer_id=customer_id,
        booking_date=day,
        booking_time=at,
        party_size=party_size,
        **extra,
    )


@pytest.mark.asyncio
async def test_create_is_approved_when_no_approval_required(services, make_branch, make_table):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)

    booking = await services.bookings.create_booking(request_for(branch_id))

    assert booking.status == BookingStatus.APPROVED.value
    assert booking.table_id == table_id
    assert booking.reference.startswith(f"B{branch_id}-")
    assert len(booking.check_in_code) == 6
    assert booking.waitlist_position is None


@pytest.mark.asyncio
async def test_create_is_pending_when_approval_required(services, make_branch, make_table):
    branch_id = await make_branch(requires_approval=True)
    await make_table(branch_id, "1", 4)

    booking = await services.bookings.create_booking(request_for(branch_id))

    assert booking.status == BookingStatus.PENDING.value
    assert booking.table_id is None


@pytest.mark.asyncio
async def test_create_without_auto_assign_leaves_table_open(services, make_branch, make_table):
    branch_id = await make_branch(auto_assign_tables=False)
    await make_table(branch_id, "1", 4)

    booking = await services.bookings.create_booking(request_for(branch_id))

    assert booking.status == BookingStatus.APPROVED.value
    assert booking.table_id is None


@pytest.mark.asyncio
async def test_create_rejects_policy_violation(services, make_branch, make_table):
    branch_id = await make_branch(max_party_size=6)
    await make_table(branch_id, "1", 8)

    with pytest.raises(PolicyViolationError) as exc_info:
        await services.bookings.create_booking(request_for(branch_id, party_size=7))

    assert "cannot exceed 6" in exc_info.value.message
    assert exc_info.value.details["party_size"] == 7


@pytest.mark.asyncio
async def test_create_rejects_unknown_customer(services, make_branch, make_table):
    branch_id = await make_branch()
    await make_table(branch_id, "1", 4)

    with pytest.raises(NotFoundError):
        await services.bookings.create_booking(request_for(branch_id, customer_id=1000))


@pytest.mark.asyncio
async def test_single_table_is_never_double_booked(services, session_factory, make_branch, make_table):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)

    first = await services.bookings.create_booking(request_for(branch_id, customer_id=1))
    second = await services.bookings.create_booking(request_for(branch_id, at=time(19, 30), customer_id=2))

    assert first.table_id == table_id
    assert second.status == BookingStatus.WAITLISTED.value
    assert second.table_id is None

    async with session_factory() as db:
        window = services.availability.window_for(
            await services.policy_store.get_branch(db, branch_id), TOMORROW, time(19, 30)
        )
        assert await services.availability.free_tables(db, branch_id, window, 2) == []


@pytest.mark.asyncio
async def test_approve_pending_assigns_table(services, make_branch, make_table, make_booking, fetch_table):
    branch_id = await make_branch(requires_approval=True)
    table_id = await make_table(branch_id, "1", 4)
    booking_id = await make_booking(branch_id, time(19, 0), status=BookingStatus.PENDING)

    approved = await services.bookings.approve_booking(booking_id, STAFF, notes="regulars")

    assert approved.status == BookingStatus.APPROVED.value
    assert approved.table_id == table_id
    assert approved.status_reason == "regulars"
    assert approved.modified_by == STAFF.id
    assert (await fetch_table(table_id)).version == 2


@pytest.mark.asyncio
async def test_approve_with_too_small_table_is_rejected(services, make_branch, make_table, make_booking, fetch_booking):
    branch_id = await make_branch(requires_approval=True)
    small = await make_table(branch_id, "1", 2)
    booking_id = await make_booking(branch_id, time(19, 0), party_size=4, status=BookingStatus.PENDING)

    with pytest.raises(TableUnavailableError) as exc_info:
        await services.bookings.approve_booking(booking_id, STAFF, table_id=small)

    assert "seats 2" in exc_info.value.message
    assert (await fetch_booking(booking_id)).status == BookingStatus.PENDING.value


@pytest.mark.asyncio
async def test_approve_with_unknown_table(services, make_branch, make_booking):
    branch_id = await make_branch(requires_approval=True)
    booking_id = await make_booking(branch_id, time(19, 0), status=BookingStatus.PENDING)

    with pytest.raises(NotFoundError):
        await services.bookings.approve_booking(booking_id, STAFF, table_id=404)


@pytest.mark.asyncio
async def test_approve_without_free_table(services, make_branch, make_table, make_booking):
    branch_id = await make_branch(requires_approval=True)
    table_id = await make_table(branch_id, "1", 4)
    await make_booking(branch_id, time(19, 0), table_id=table_id)
    booking_id = await make_booking(branch_id, time(19, 30), status=BookingStatus.PENDING)

    with pytest.raises(TableUnavailableError):
        await services.bookings.approve_booking(booking_id, STAFF)


@pytest.mark.asyncio
async def test_approve_waitlisted_closes_gap(services, session_factory, make_branch, make_table, make_booking):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)
    first = await make_booking(branch_id, time(19, 0), status=BookingStatus.WAITLISTED, waitlist_position=1)
    second = await make_booking(branch_id, time(19, 0), status=BookingStatus.WAITLISTED, waitlist_position=2)

    approved = await services.bookings.approve_booking(first, STAFF)

    assert approved.status == BookingStatus.APPROVED.value
    assert approved.table_id == table_id
    assert approved.waitlist_position is None
    async with session_factory() as db:
        remaining = await services.waitlist.get_waitlist(db, branch_id, TOMORROW)
    assert [(b.id, b.waitlist_position) for b in remaining] == [(second, 1)]


@pytest.mark.asyncio
async def test_deny_pending(services, make_branch, make_booking):
    branch_id = await make_branch(requires_approval=True)
    booking_id = await make_booking(branch_id, time(19, 0), status=BookingStatus.PENDING)

    denied = await services.bookings.deny_booking(booking_id, "Private event", STAFF)

    assert denied.status == BookingStatus.DENIED.value
    assert denied.status_reason == "Private event"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.DENIED],
)
async def test_terminal_bookings_reject_transitions(services, make_branch, make_booking, fetch_booking, status):
    branch_id = await make_branch()
    booking_id = await make_booking(branch_id, time(19, 0), status=status)

    with pytest.raises(InvalidStateTransitionError):
        await services.bookings.approve_booking(booking_id, STAFF)
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.bookings.cancel_booking(booking_id, None, STAFF)

    booking = await fetch_booking(booking_id)
    assert booking.status == status.value
    assert booking.is_terminal
    assert exc_info.value.details["allowed"] == ["approved", "pending", "seated", "waitlisted"]


@pytest.mark.asyncio
async def test_service_flow_requires_right_state(services, make_branch, make_booking):
    branch_id = await make_branch()
    pending = await make_booking(branch_id, time(19, 0), status=BookingStatus.PENDING)

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.bookings.complete_booking(pending, STAFF)
    with pytest.raises(InvalidStateTransitionError):
        await services.bookings.mark_seated(pending, STAFF)
    with pytest.raises(InvalidStateTransitionError):
        await services.bookings.mark_arrived(pending, STAFF)

    assert exc_info.value.details["allowed"] == ["seated"]


@pytest.mark.asyncio
async def test_unknown_booking(services):
    with pytest.raises(NotFoundError):
        await services.bookings.get_booking(12345)
    with pytest.raises(NotFoundError):
        await services.bookings.cancel_booking(12345, None, STAFF)


@pytest.mark.asyncio
async def test_customer_cancel_blocked_by_policy(services, make_branch, make_booking):
    branch_id = await make_branch(allow_cancellations=False)
    booking_id = await make_booking(branch_id, time(19, 0))

    with pytest.raises(PolicyViolationError):
        await services.bookings.cancel_booking(booking_id, None, CUSTOMER)

    # Staff may still cancel
    cancelled = await services.bookings.cancel_booking(booking_id, "kitchen closed", STAFF)
    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancelled_by_role == "staff"


@pytest.mark.asyncio
async def test_late_cancellation_is_flagged_for_customers(services, make_branch, make_table, make_booking):
    # Clock is 10:00; the deadline is two hours before the booking
    branch_id = await make_branch(cancellation_deadline_hours=2)
    table_id = await make_table(branch_id, "1", 4)
    today = date(2030, 6, 3)
    late = await make_booking(branch_id, time(11, 30), table_id=table_id, booking_date=today)
    on_time = await make_booking(branch_id, time(19, 0), booking_date=today)
    staff_late = await make_booking(branch_id, time(11, 45), booking_date=today)

    assert (await services.bookings.cancel_booking(late, None, CUSTOMER)).late_cancellation is True
    assert (await services.bookings.cancel_booking(on_time, None, CUSTOMER)).late_cancellation is False
    assert (await services.bookings.cancel_booking(staff_late, None, STAFF)).late_cancellation is False


@pytest.mark.asyncio
async def test_cancel_releases_table(services, session_factory, make_branch, make_table, make_booking, fetch_booking):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)
    booking_id = await make_booking(branch_id, time(19, 0), table_id=table_id)

    await services.bookings.cancel_booking(booking_id, None, CUSTOMER)

    assert (await fetch_booking(booking_id)).table_id is None
    async with session_factory() as db:
        result = await services.availability.check_availability(db, branch_id, TOMORROW, time(19, 0), 2)
    assert result.available is True


@pytest.mark.asyncio
async def test_cancel_seated_frees_table(services, make_branch, make_table, make_booking, fetch_table):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)
    booking_id = await make_booking(branch_id, time(19, 0), table_id=table_id)
    await services.bookings.mark_seated(booking_id, STAFF)
    assert (await fetch_table(table_id)).status == TableStatus.OCCUPIED

    cancelled = await services.bookings.cancel_booking(booking_id, "walked out", STAFF)

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert (await fetch_table(table_id)).status == TableStatus.AVAILABLE


@pytest.mark.asyncio
async def test_arrive_seat_complete(services, make_branch, make_table, make_booking, fetch_table):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)
    booking_id = await make_booking(branch_id, time(19, 0), table_id=table_id)

    arrived = await services.bookings.mark_arrived(booking_id, STAFF)
    assert arrived.status == BookingStatus.APPROVED.value
    assert arrived.arrived_at is not None

    seated = await services.bookings.mark_seated(booking_id, STAFF)
    assert seated.status == BookingStatus.SEATED.value
    assert seated.seated_at is not None
    assert seated.arrived_at == arrived.arrived_at

    completed = await services.bookings.complete_booking(booking_id, STAFF)
    assert completed.status == BookingStatus.COMPLETED.value
    assert completed.departed_at is not None
    assert completed.table_id == table_id
    assert (await fetch_table(table_id)).status == TableStatus.AVAILABLE


@pytest.mark.asyncio
async def test_seat_at_different_table(services, make_branch, make_table, make_booking, fetch_table):
    branch_id = await make_branch()
    original = await make_table(branch_id, "1", 4)
    window_table = await make_table(branch_id, "2", 4, location_type="window")
    booking_id = await make_booking(branch_id, time(19, 0), table_id=original)

    seated = await services.bookings.mark_seated(booking_id, STAFF, table_id=window_table)

    assert seated.table_id == window_table
    assert (await fetch_table(window_table)).status == TableStatus.OCCUPIED
    assert (await fetch_table(original)).status == TableStatus.AVAILABLE


@pytest.mark.asyncio
async def test_seat_at_booked_table_is_rejected(services, make_branch, make_table, make_booking):
    branch_id = await make_branch()
    mine = await make_table(branch_id, "1", 4)
    taken = await make_table(branch_id, "2", 4)
    booking_id = await make_booking(branch_id, time(19, 0), table_id=mine)
    await make_booking(branch_id, time(19, 30), table_id=taken, customer_id=2)

    with pytest.raises(TableUnavailableError):
        await services.bookings.mark_seated(booking_id, STAFF, table_id=taken)


@pytest.mark.asyncio
async def test_seat_assigns_table_when_none_held(services, make_branch, make_table, make_booking):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)
    booking_id = await make_booking(branch_id, time(19, 0))

    seated = await services.bookings.mark_seated(booking_id, STAFF)

    assert seated.table_id == table_id


@pytest.mark.asyncio
async def test_list_bookings_filters_and_pages(services, make_branch, make_booking):
    branch_id = await make_branch()
    ids = [await make_booking(branch_id, time(hour, 0)) for hour in (20, 18, 19)]
    await make_booking(branch_id, time(19, 0), status=BookingStatus.PENDING)
    await make_booking(branch_id, time(12, 0), booking_date=date(2030, 6, 5))

    approved, total = await services.bookings.list_bookings(
        branch_id, booking_date=TOMORROW, status=BookingStatus.APPROVED, limit=2
    )

    assert total == 3
    assert [b.id for b in approved] == [ids[1], ids[2]]
    everything, total = await services.bookings.list_bookings(branch_id)
    assert total == 5
    assert len(everything) == 5


def test_module_docstring_compiles_without_escape_warnings():
    source = Path(booking_service.__file__).read_text()

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, booking_service.__file__, "exec")


class ContextRecordingCustomers(FakeCustomerDirectory):
    def __init__(self):
        self.seen = []

    async def get_customer(self, customer_id):
        self.seen.append(structlog.contextvars.get_contextvars())
        return await super().get_customer(customer_id)


@pytest.mark.asyncio
async def test_lifecycle_operations_bind_log_context(session_factory, clock, make_branch, make_table):
    customers = ContextRecordingCustomers()
    services = build_services(session_factory, clock=clock, customers=customers, cache_invalidation=False)
    branch_id = await make_branch()
    await make_table(branch_id, "1", 4)

    await services.bookings.create_booking(request_for(branch_id))
    await services.event_bus.drain()

    assert customers.seen[0]["operation"] == "create"
    assert customers.seen[0]["branch_id"] == branch_id
    assert "booking_id" not in customers.seen[0]
    assert "operation" not in structlog.contextvars.get_contextvars()
