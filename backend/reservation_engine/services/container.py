"""
Service wiring.

Builds the engine's object graph once and hands it to the HTTP layer.
Collaborators (branch/customer directories, notification dispatcher, clock)
can be swapped by passing them to build_services(); tests use this to inject
a FixedClock and recording fakes.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservation_engine.core.clock import Clock, SystemClock
from reservation_engine.services import cache_service
from reservation_engine.services.availability_service import AvailabilityEngine
from reservation_engine.services.booking_service import BookingLifecycleManager
from reservation_engine.services.directories import (
    LoggingNotificationDispatcher,
    PassthroughCustomerDirectory,
    SqlBranchDirectory,
)
from reservation_engine.services.event_bus import EventBus, NotificationSubscriber
from reservation_engine.services.interfaces import BranchDirectory, CustomerDirectory, NotificationDispatcher
from reservation_engine.services.policy_store import BranchPolicyStore
from reservation_engine.services.table_assignment import TableAssignmentPolicy
from reservation_engine.services.waitlist_service import WaitlistCoordinator


@dataclass
class ReservationServices:
    clock: Clock
    session_factory: async_sessionmaker[AsyncSession]
    event_bus: EventBus
    policy_store: BranchPolicyStore
    assignment: TableAssignmentPolicy
    availability: AvailabilityEngine
    waitlist: WaitlistCoordinator
    bookings: BookingLifecycleManager


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    clock: Optional[Clock] = None,
    branches: Optional[BranchDirectory] = None,
    customers: Optional[CustomerDirectory] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    cache_invalidation: bool = True,
) -> ReservationServices:
    clock = clock or SystemClock()
    customers = customers or PassthroughCustomerDirectory()

    event_bus = EventBus()
    event_bus.subscribe(NotificationSubscriber(dispatcher or LoggingNotificationDispatcher(), customers))
    if cache_invalidation:
        event_bus.subscribe(cache_service.invalidate_on_event)

    policy_store = BranchPolicyStore(branches or SqlBranchDirectory(), clock)
    assignment = TableAssignmentPolicy()
    availability = AvailabilityEngine(policy_store, assignment)
    waitlist = WaitlistCoordinator(policy_store, availability, assignment, clock, session_factory, event_bus)
    bookings = BookingLifecycleManager(
        policy_store, availability, assignment, waitlist, customers, clock, session_factory, event_bus
    )
    return ReservationServices(
        clock=clock,
        session_factory=session_factory,
        event_bus=event_bus,
        policy_store=policy_store,
        assignment=assignment,
        availability=availability,
        waitlist=waitlist,
        bookings=bookings,
    )
