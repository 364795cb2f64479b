"""
Scoped transaction for booking-affecting operations.

    async with unit_of_work(session_factory, event_bus) as uow:
        booking = await load(uow.session, ...)
        booking.status = ...
        uow.record(event)

The block commits on normal exit and rolls back on any exception, so a
failure midway (e.g. table validation after a waitlist shift) undoes every
write of the operation. Recorded lifecycle events are handed to the event bus
only after the commit succeeded; a rolled-back operation emits nothing.
SQLAlchemy failures surface as InternalError.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reservation_engine.core.errors import InternalError
from reservation_engine.core.logging import get_logger
from reservation_engine.schemas.events import LifecycleEvent

if TYPE_CHECKING:
    from reservation_engine.services.event_bus import EventBus

logger = get_logger(__name__)


class UnitOfWork:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.events: list[LifecycleEvent] = []

    def record(self, event: LifecycleEvent) -> None:
        self.events.append(event)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
    event_bus: Optional["EventBus"] = None,
) -> AsyncIterator[UnitOfWork]:
    async with session_factory() as session:
        uow = UnitOfWork(session)
        try:
            async with session.begin():
                yield uow
        except SQLAlchemyError as e:
            logger.error("transaction_failed", error=str(e), error_type=type(e).__name__)
            raise InternalError("The reservation store failed to complete the operation") from e

    if event_bus is not None and uow.events:
        event_bus.publish(uow.events)
