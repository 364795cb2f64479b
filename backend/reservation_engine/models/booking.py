"""
Booking model representing a table reservation at a branch.

Key design decisions:
- Bookings are never deleted; denied/cancelled rows stay for audit and for
  waitlist renumbering
- `duration_minutes` is captured at creation so a later policy change does
  not move existing windows
- CHECK constraints back the state invariants: a waitlist position exists
  exactly while waitlisted, and a table is held only by approved, seated or
  completed bookings
- Composite index on (branch_id, booking_date, status) serves both the
  overlap scan and the waitlist partition queries
"""

from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, Time, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint, Index,
)

from reservation_engine.db.base import Base, TimestampMixin


class BookingStatus(str, Enum):
    PENDING = "pending"
    WAITLISTED = "waitlisted"
    APPROVED = "approved"
    DENIED = "denied"
    SEATED = "seated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({BookingStatus.DENIED, BookingStatus.COMPLETED, BookingStatus.CANCELLED})
CONFIRMED_STATUSES = (BookingStatus.APPROVED.value, BookingStatus.SEATED.value)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    customer_id = Column(Integer, nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True, index=True)
    reference = Column(String(32), nullable=False)

    booking_date = Column(Date, nullable=False)
    booking_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=90)
    party_size = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)

    # Waitlist
    waitlist_position = Column(Integer, nullable=True)
    waitlisted_at = Column(DateTime(timezone=True), nullable=True)
    estimated_wait_minutes = Column(Integer, nullable=True)
    notification_status = Column(String(20), nullable=True)
    last_notified_at = Column(DateTime(timezone=True), nullable=True)
    action_deadline = Column(DateTime(timezone=True), nullable=True)

    # Request details
    seating_preference = Column(String(20), nullable=True)
    special_requests = Column(Text, nullable=True)
    occasion = Column(String(50), nullable=True)
    source = Column(String(20), nullable=False, default="app")
    check_in_code = Column(String(6), nullable=False)

    # Lifecycle audit
    status_reason = Column(Text, nullable=True)
    cancelled_by_role = Column(String(20), nullable=True)
    late_cancellation = Column(Boolean, nullable=False, default=False)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    seated_at = Column(DateTime(timezone=True), nullable=True)
    departed_at = Column(DateTime(timezone=True), nullable=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    modified_by = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("branch_id", "reference", name="uq_branch_booking_reference"),
        CheckConstraint("party_size > 0", name="check_booking_party_size_positive"),
        CheckConstraint("duration_minutes > 0", name="check_booking_duration_positive"),
        CheckConstraint(
            "status IN ('pending', 'waitlisted', 'approved', 'denied', 'seated', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "(status = 'waitlisted' AND waitlist_position IS NOT NULL AND waitlist_position >= 1)"
            " OR (status <> 'waitlisted' AND waitlist_position IS NULL)",
            name="check_waitlist_position_matches_status",
        ),
        CheckConstraint(
            "table_id IS NULL OR status IN ('approved', 'seated', 'completed')",
            name="check_table_held_by_confirmed_booking",
        ),
        Index("ix_bookings_branch_date_status", "branch_id", "booking_date", "status"),
    )

    @property
    def starts_at(self) -> datetime:
        """Start of the reservation window in branch-local civil time."""
        return datetime.combine(self.booking_date, self.booking_time)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_terminal(self) -> bool:
        return BookingStatus(self.status) in TERMINAL_STATUSES

    def leave_waitlist(self) -> None:
        self.waitlist_position = None
        self.estimated_wait_minutes = None

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, ref={self.reference}, status={self.status}, table={self.table_id})>"
