"""
Table selection and concurrency-safe table claims.

CONCURRENCY STRATEGY: Row Lock + Optimistic Version Check
==========================================================

Problem:
  Two staff members approve two overlapping bookings at the same moment.
  Both read "table 4 is free 19:00-20:30", both assign it.
  Result: Double booking.

Solution:
  1. SELECT ... FOR UPDATE on the table row serializes claimants on
     PostgreSQL; the second waits until the first commits.
  2. Once the lock is held, the overlap check is repeated against committed
     bookings, so the second claimant sees the first one's booking.
  3. UPDATE tables SET version = version + 1
     WHERE id = :table_id AND version = :seen_version
     If rows_affected == 0 someone else assigned the table in between and
     the claim is abandoned for the next-ranked candidate.

  The version check still protects stores without row locks (SQLite in
  tests), where FOR UPDATE is silently dropped.

Ranking:
  Tightest capacity fit first (least wasted seats), then tables matching the
  seating preference, then the lowest table number.
"""

from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.core.config import get_settings
from reservation_engine.core.logging import get_logger
from reservation_engine.core.metrics import table_claim_conflicts
from reservation_engine.models.table import Table
from reservation_engine.services.scheduling import ReservationWindow, table_has_conflict, table_number_key

logger = get_logger(__name__)

NO_PREFERENCE = "no_preference"


def _normalize_preference(preference: Optional[str]) -> Optional[str]:
    if preference is None:
        return None
    value = getattr(preference, "value", preference)
    return None if value == NO_PREFERENCE else value


class TableAssignmentPolicy:
    def __init__(self, max_retries: Optional[int] = None):
        self.max_retries = max_retries or get_settings().MAX_ASSIGNMENT_RETRIES

    @staticmethod
    def rank(tables: Iterable, party_size: int, preference: Optional[str] = None) -> list:
        """
        Tables that seat the party, best candidate first.

        Works on anything exposing capacity, location_type and table_number
        (ORM rows or TableSummary). Ordering is total, so equal inputs always
        rank the same way.
        """
        preference = _normalize_preference(preference)
        fitting = [t for t in tables if t.capacity >= party_size]
        return sorted(
            fitting,
            key=lambda t: (
                t.capacity - party_size,
                0 if preference and t.location_type == preference else 1,
                table_number_key(t.table_number),
            ),
        )

    def select(self, tables: Iterable, party_size: int, preference: Optional[str] = None):
        ranked = self.rank(tables, party_size, preference)
        return ranked[0] if ranked else None

    async def claim(
        self,
        db: AsyncSession,
        table_id: int,
        window: ReservationWindow,
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[Table]:
        """
        Lock the table, confirm the window is still free and bump its version.

        Returns the table on success, None when it is inactive, already taken
        for an overlapping window, or lost to a concurrent claim.
        """
        result = await db.execute(select(Table).where(Table.id == table_id).with_for_update())
        table = result.scalar_one_or_none()
        if table is None or not table.is_active:
            return None

        if await table_has_conflict(db, table.branch_id, table.id, window, exclude_booking_id):
            logger.info("table_claim_overlap", table_id=table.id, window_start=window.start.isoformat())
            return None

        seen_version = table.version
        update_result = await db.execute(
            update(Table)
            .where(Table.id == table.id, Table.version == seen_version)
            .values(version=Table.version + 1)
        )
        if update_result.rowcount == 0:
            table_claim_conflicts.inc()
            logger.info("table_claim_conflict", table_id=table.id, seen_version=seen_version)
            return None

        logger.debug("table_claimed", table_id=table.id, version=seen_version + 1)
        return table

    async def assign(
        self,
        db: AsyncSession,
        candidates: Sequence,
        window: ReservationWindow,
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[Table]:
        """
        Claim the first candidate that can still be claimed.

        `candidates` must already be ranked. At most `max_retries` claims are
        attempted before giving up.
        """
        for attempt, candidate in enumerate(candidates[: self.max_retries], start=1):
            table = await self.claim(db, candidate.id, window, exclude_booking_id)
            if table is not None:
                return table
            logger.info("table_assignment_retry", table_id=candidate.id, attempt=attempt)

        logger.warning("table_assignment_exhausted", candidates=len(candidates))
        return None
