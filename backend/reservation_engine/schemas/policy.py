"""
Typed branch configuration.

Stored settings are loosely-typed JSON; they are validated into these models
once, at the BranchPolicyStore boundary, so the rest of the engine can rely on
named fields and stated defaults.
"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from reservation_engine.core.config import get_settings

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class DayHours(BaseModel):
    open: Optional[time] = None
    close: Optional[time] = None
    is_closed: bool = False

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def check_bounds(self) -> "DayHours":
        if self.is_closed:
            return self
        if self.open is None or self.close is None:
            # Incomplete hours mean closed.
            self.is_closed = True
        elif self.close <= self.open:
            raise ValueError("closing time must be after opening time")
        return self

    def contains(self, at: time) -> bool:
        if self.is_closed:
            return False
        return self.open <= at <= self.close


class BranchReservationPolicy(BaseModel):
    enabled: bool = False
    requires_approval: bool = True
    auto_assign_tables: bool = True
    min_party_size: int = Field(default=1, ge=1)
    max_party_size: int = Field(default=12, ge=1)
    min_advance_booking_hours: float = Field(default=1, ge=0)
    max_advance_booking_days: int = Field(default=30, ge=0)
    default_reservation_duration_minutes: int = Field(
        default_factory=lambda: get_settings().DEFAULT_RESERVATION_DURATION_MINUTES, gt=0
    )
    booking_interval_minutes: int = Field(default=15, gt=0)
    waitlist_enabled: bool = True
    waitlist_max_size: int = Field(default=20, ge=0)
    allow_cancellations: bool = True
    cancellation_deadline_hours: float = Field(default=2, ge=0)
    average_wait_time_minutes: int = Field(default=15, ge=0)
    turnover_buffer_minutes: int = Field(default_factory=lambda: get_settings().TURNOVER_BUFFER_MINUTES, ge=0)
    waitlist_response_window_minutes: int = Field(
        default_factory=lambda: get_settings().WAITLIST_RESPONSE_WINDOW_MINUTES, gt=0
    )

    model_config = {"extra": "ignore"}

    @model_validator(mode="after")
    def check_party_bounds(self) -> "BranchReservationPolicy":
        if self.min_party_size > self.max_party_size:
            raise ValueError("min_party_size cannot exceed max_party_size")
        return self


class BranchConfig(BaseModel):
    id: int
    merchant_id: int
    name: str
    timezone: str = "UTC"
    operating_hours: dict[str, DayHours] = Field(default_factory=dict)
    reservation_policy: BranchReservationPolicy = Field(default_factory=BranchReservationPolicy)

    def hours_for(self, day: date) -> Optional[DayHours]:
        hours = self.operating_hours.get(WEEKDAY_NAMES[day.weekday()])
        if hours is None or hours.is_closed:
            return None
        return hours
