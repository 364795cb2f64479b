"""
In-process lifecycle event bus.

Events reach the bus only after their transaction committed (see
db/unit_of_work.py). Each (event, handler) pair runs as its own asyncio task,
so a slow or failing subscriber never delays the response or undoes the
booking transition. Failures are logged and counted.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional

from reservation_engine.core.logging import get_logger
from reservation_engine.core.metrics import notification_failures
from reservation_engine.schemas.events import Actor, LifecycleEvent, LifecycleEventType
from reservation_engine.services.interfaces import CustomerDirectory, NotificationDispatcher

logger = get_logger(__name__)

EventHandler = Callable[[LifecycleEvent], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._handlers: list[tuple[Optional[frozenset], EventHandler]] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, handler: EventHandler, *event_types: LifecycleEventType) -> None:
        """Register a handler for the given event types, or for all of them when none are given."""
        self._handlers.append((frozenset(event_types) or None, handler))

    def publish(self, events: Iterable[LifecycleEvent]) -> None:
        for event in events:
            logger.info(
                "lifecycle_event",
                event_type=event.type.value,
                booking_id=event.booking_id,
                branch_id=event.branch_id,
                actor_role=event.actor_role.value,
            )
            for types, handler in self._handlers:
                if types is not None and event.type not in types:
                    continue
                task = asyncio.create_task(self._deliver(handler, event))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: EventHandler, event: LifecycleEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            notification_failures.labels(event_type=event.type.value).inc()
            logger.error(
                "lifecycle_event_handler_failed",
                event_type=event.type.value,
                booking_id=event.booking_id,
                handler=getattr(handler, "__qualname__", type(handler).__name__),
                error=str(e),
                error_type=type(e).__name__,
            )

    async def drain(self) -> None:
        """Wait for every in-flight delivery. Used on shutdown and in tests."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


# (category, title, message template) per event type.
_TEMPLATES: dict[LifecycleEventType, tuple[str, str, str]] = {
    LifecycleEventType.BOOKING_CREATED: (
        "booking", "Booking received", "Your booking {reference} for {date} at {time} has been received.",
    ),
    LifecycleEventType.BOOKING_WAITLISTED: (
        "waitlist", "Added to waitlist", "You are number {position} on the waitlist for {date} at {time}.",
    ),
    LifecycleEventType.BOOKING_APPROVED: (
        "booking", "Booking confirmed", "Your booking {reference} for {date} at {time} is confirmed.",
    ),
    LifecycleEventType.BOOKING_DENIED: (
        "booking", "Booking declined", "Your booking {reference} could not be accepted.",
    ),
    LifecycleEventType.BOOKING_CANCELLED: (
        "booking", "Booking cancelled", "Your booking {reference} has been cancelled.",
    ),
    LifecycleEventType.CUSTOMER_ARRIVED: (
        "booking", "Welcome", "We have registered your arrival for booking {reference}.",
    ),
    LifecycleEventType.CUSTOMER_SEATED: (
        "booking", "You are seated", "Enjoy your meal! Booking {reference}.",
    ),
    LifecycleEventType.BOOKING_COMPLETED: (
        "booking", "Thank you", "Thank you for dining with us. Booking {reference} is complete.",
    ),
    LifecycleEventType.WAITLIST_PROMOTED: (
        "waitlist", "A table is ready", "Good news! Your waitlisted booking {reference} is now confirmed.",
    ),
    LifecycleEventType.WAITLIST_POSITION_CHANGED: (
        "waitlist", "Waitlist update", "You are now number {position} on the waitlist.",
    ),
    LifecycleEventType.WAITLIST_TABLE_AVAILABLE: (
        "waitlist", "Table available", "A table is available for {date} at {time}. Please respond by {deadline}.",
    ),
}


class _Missing(dict):
    def __missing__(self, key):
        return "-"


class NotificationSubscriber:
    """Turns lifecycle events into customer notifications."""

    def __init__(self, dispatcher: NotificationDispatcher, customers: CustomerDirectory):
        self.dispatcher = dispatcher
        self.customers = customers

    async def __call__(self, event: LifecycleEvent) -> None:
        template = _TEMPLATES.get(event.type)
        if template is None:
            return

        customer = await self.customers.get_customer(event.customer_id)
        if customer is None:
            logger.warning("notification_skipped_unknown_customer", customer_id=event.customer_id)
            return

        category, title, message = template
        data = {
            "booking_id": event.booking_id,
            "branch_id": event.branch_id,
            "event_type": event.type.value,
            **event.metadata,
        }
        await self.dispatcher.notify(
            user_id=customer.user_id,
            category=category,
            title=title,
            message=message.format_map(_Missing(data)),
            data=data,
        )


def booking_event(
    booking,
    event_type: LifecycleEventType,
    actor: Actor,
    occurred_at: datetime,
    **extra: Any,
) -> LifecycleEvent:
    """Snapshot a booking into a lifecycle event. Call after the transition is applied."""
    metadata = {
        "reference": booking.reference,
        "status": booking.status,
        "date": booking.booking_date.isoformat(),
        "time": booking.booking_time.strftime("%H:%M"),
        "party_size": booking.party_size,
        "table_id": booking.table_id,
        "position": booking.waitlist_position,
    }
    metadata.update(extra)
    return LifecycleEvent(
        type=event_type,
        booking_id=booking.id,
        branch_id=booking.branch_id,
        customer_id=booking.customer_id,
        actor_id=actor.id,
        actor_role=actor.role,
        metadata=metadata,
        occurred_at=occurred_at,
    )
