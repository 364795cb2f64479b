"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime, time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from reservation_engine.schemas.events import Actor, ActorRole


class SeatingPreference(str, Enum):
    NO_PREFERENCE = "no_preference"
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    ROOFTOP = "rooftop"
    BALCONY = "balcony"
    WINDOW = "window"
    BAR = "bar"


class BookingRequest(BaseModel):
    branch_id: int
    customer_id: int
    booking_date: date
    booking_time: time
    party_size: int = Field(..., gt=0)
    seating_preference: Optional[SeatingPreference] = None
    special_requests: Optional[str] = Field(None, max_length=2000)
    occasion: Optional[str] = Field(None, max_length=50)
    source: str = Field(default="app", max_length=20)


class BookingCreate(BaseModel):
    customer_id: int
    booking_date: date
    booking_time: time
    party_size: int = Field(..., gt=0)
    seating_preference: Optional[SeatingPreference] = None
    special_requests: Optional[str] = Field(None, max_length=2000)
    occasion: Optional[str] = Field(None, max_length=50)
    source: str = Field(default="app", max_length=20)

    def to_request(self, branch_id: int) -> BookingRequest:
        return BookingRequest(branch_id=branch_id, **self.model_dump())


class ActorPayload(BaseModel):
    actor_id: Optional[int] = None
    actor_role: ActorRole = ActorRole.STAFF

    @property
    def actor(self) -> Actor:
        return Actor(id=self.actor_id, role=self.actor_role)


class ApproveRequest(ActorPayload):
    table_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=1000)


class DenyRequest(ActorPayload):
    reason: str = Field(..., min_length=1, max_length=1000)


class CancelRequest(ActorPayload):
    reason: Optional[str] = Field(None, max_length=1000)
    actor_role: ActorRole = ActorRole.CUSTOMER


class SeatRequest(ActorPayload):
    table_id: Optional[int] = None


class BookingResponse(BaseModel):
    id: int
    branch_id: int
    customer_id: int
    table_id: Optional[int]
    reference: str
    booking_date: date
    booking_time: time
    duration_minutes: int
    party_size: int
    status: str
    waitlist_position: Optional[int]
    estimated_wait_minutes: Optional[int]
    seating_preference: Optional[str]
    special_requests: Optional[str]
    status_reason: Optional[str]
    late_cancellation: bool
    check_in_code: str
    arrived_at: Optional[datetime]
    seated_at: Optional[datetime]
    departed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    limit: int
    offset: int
