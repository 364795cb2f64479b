"""
Branch-declared booking windows and blackouts.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, Time, ForeignKey, CheckConstraint, Index

from reservation_engine.db.base import Base, TimestampMixin


class TimeSlotDefinition(Base, TimestampMixin):
    """Explicit operating window for one weekday. Takes precedence over branch hours."""

    __tablename__ = "booking_time_slots"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0=Monday .. 6=Sunday (date.weekday())
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    booking_interval_minutes = Column(Integer, nullable=False, default=15)
    slot_name = Column(String(50), nullable=True)  # "Lunch", "Dinner"
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_slot_day_of_week"),
        CheckConstraint("booking_interval_minutes > 0", name="check_slot_interval_positive"),
        Index("ix_time_slots_branch_day", "branch_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<TimeSlotDefinition(branch={self.branch_id}, day={self.day_of_week}, {self.start_time}-{self.end_time})>"


class BlackoutWindow(Base, TimestampMixin):
    """Unavailable date, or date + time range. Missing bounds black out the whole day."""

    __tablename__ = "booking_blackout_dates"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    blackout_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_blackouts_branch_date", "branch_id", "blackout_date"),
    )

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None or self.end_time is None

    def covers(self, at) -> bool:
        if self.is_full_day:
            return True
        return self.start_time <= at <= self.end_time

    def __repr__(self) -> str:
        return f"<BlackoutWindow(branch={self.branch_id}, date={self.blackout_date})>"
