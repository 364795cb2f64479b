"""
Read-only access to a branch's reservation rules.

Branch settings, time slots and blackout windows are loaded here and checked
here, so the availability engine and lifecycle manager ask questions
("is 19:00 on the 4th bookable for 6?") instead of re-implementing rules.
Expected rule breaches come back as a PolicyRejection; only a missing branch
raises.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.core.clock import Clock
from reservation_engine.core.errors import ErrorCode, NotFoundError, PolicyViolationError
from reservation_engine.core.logging import get_logger
from reservation_engine.models.schedule import BlackoutWindow, TimeSlotDefinition
from reservation_engine.schemas.policy import BranchConfig
from reservation_engine.services.interfaces import BranchDirectory

logger = get_logger(__name__)


@dataclass(frozen=True)
class PolicyRejection:
    reason: str
    code: ErrorCode = ErrorCode.POLICY_VIOLATION

    def to_error(self, **details) -> PolicyViolationError:
        return PolicyViolationError(self.reason, details=details or None)


class BranchPolicyStore:
    def __init__(self, directory: BranchDirectory, clock: Clock):
        self._directory = directory
        self._clock = clock

    async def get_branch(self, db: AsyncSession, branch_id: int) -> BranchConfig:
        branch = await self._directory.get_branch(db, branch_id)
        if branch is None:
            raise NotFoundError(f"Branch {branch_id} not found", details={"branch_id": branch_id})
        return branch

    def local_now(self, branch: BranchConfig) -> datetime:
        return self._clock.local_now(branch.timezone)

    async def get_time_slots(self, db: AsyncSession, branch_id: int, day: date) -> list[TimeSlotDefinition]:
        result = await db.execute(
            select(TimeSlotDefinition)
            .where(
                TimeSlotDefinition.branch_id == branch_id,
                TimeSlotDefinition.day_of_week == day.weekday(),
                TimeSlotDefinition.is_active.is_(True),
            )
            .order_by(TimeSlotDefinition.start_time.asc())
        )
        return list(result.scalars().all())

    async def get_blackouts(self, db: AsyncSession, branch_id: int, day: date) -> list[BlackoutWindow]:
        result = await db.execute(
            select(BlackoutWindow).where(
                BlackoutWindow.branch_id == branch_id,
                BlackoutWindow.blackout_date == day,
            )
        )
        return list(result.scalars().all())

    async def find_blackout(
        self, db: AsyncSession, branch_id: int, day: date, at: Optional[time] = None
    ) -> Optional[BlackoutWindow]:
        """Blackout covering `at`, or a full-day blackout when no time is given."""
        for blackout in await self.get_blackouts(db, branch_id, day):
            if at is None:
                if blackout.is_full_day:
                    return blackout
            elif blackout.covers(at):
                return blackout
        return None

    async def is_within_operating_hours(
        self, db: AsyncSession, branch: BranchConfig, day: date, at: time
    ) -> bool:
        slots = await self.get_time_slots(db, branch.id, day)
        if slots:
            # Explicit slots for the weekday replace the generic branch hours.
            return any(slot.start_time <= at <= slot.end_time for slot in slots)

        hours = branch.hours_for(day)
        return hours is not None and hours.contains(at)

    def check_party_size(self, branch: BranchConfig, party_size: int) -> Optional[PolicyRejection]:
        policy = branch.reservation_policy
        if party_size < policy.min_party_size:
            return PolicyRejection(f"Party size must be at least {policy.min_party_size}")
        if party_size > policy.max_party_size:
            return PolicyRejection(f"Party size cannot exceed {policy.max_party_size}")
        return None

    def check_booking_window(self, branch: BranchConfig, day: date, at: time) -> Optional[PolicyRejection]:
        """Past, too-soon and too-far checks in branch-local time."""
        policy = branch.reservation_policy
        requested = datetime.combine(day, at)
        now = self.local_now(branch)

        if requested <= now:
            return PolicyRejection("Booking must be for a future date and time")
        if requested - now > timedelta(days=policy.max_advance_booking_days):
            return PolicyRejection(
                f"Booking can only be made up to {policy.max_advance_booking_days} days in advance"
            )
        if requested - now < timedelta(hours=policy.min_advance_booking_hours):
            return PolicyRejection(
                f"Booking must be made at least {policy.min_advance_booking_hours:g} hour(s) in advance"
            )
        return None

    async def validate_request(
        self, db: AsyncSession, branch: BranchConfig, day: date, at: time, party_size: int
    ) -> Optional[PolicyRejection]:
        if not branch.reservation_policy.enabled:
            return PolicyRejection("This branch does not accept reservations")

        rejection = self.check_party_size(branch, party_size) or self.check_booking_window(branch, day, at)
        if rejection:
            return rejection

        blackout = await self.find_blackout(db, branch.id, day, at)
        if blackout is not None:
            return PolicyRejection(
                f"{day.isoformat()} {at.strftime('%H:%M')} is unavailable due to {blackout.reason or 'a blackout'}"
            )

        if not await self.is_within_operating_hours(db, branch, day, at):
            return PolicyRejection("Booking time is outside operating hours")

        return None

    def is_late_cancellation(self, branch: BranchConfig, day: date, at: time) -> bool:
        hours_left = (datetime.combine(day, at) - self.local_now(branch)) / timedelta(hours=1)
        return hours_left < branch.reservation_policy.cancellation_deadline_hours
