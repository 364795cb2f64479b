from reservation_engine.schemas.policy import BranchConfig, BranchReservationPolicy, DayHours
from reservation_engine.schemas.booking import (
    BookingRequest, BookingCreate, BookingResponse, BookingListResponse,
    ActorPayload, ApproveRequest, DenyRequest, CancelRequest, SeatRequest, SeatingPreference,
)
from reservation_engine.schemas.availability import (
    AvailabilityResult, TableSummary, SlotAvailability, DayAvailability, RangeAvailability, NextAvailableTime,
)
from reservation_engine.schemas.events import Actor, ActorRole, LifecycleEvent, LifecycleEventType
from reservation_engine.schemas.waitlist import (
    WaitlistStatus, MoveDirection, EstimateMode, WaitlistSlotRequest, WaitlistMoveRequest, EstimateRequest, EstimateResponse,
)

__all__ = [
    "BranchConfig", "BranchReservationPolicy", "DayHours",
    "BookingRequest", "BookingCreate", "BookingResponse", "BookingListResponse",
    "ActorPayload", "ApproveRequest", "DenyRequest", "CancelRequest", "SeatRequest", "SeatingPreference",
    "AvailabilityResult", "TableSummary", "SlotAvailability", "DayAvailability", "RangeAvailability",
    "NextAvailableTime",
    "Actor", "ActorRole", "LifecycleEvent", "LifecycleEventType",
    "WaitlistStatus", "MoveDirection", "EstimateMode",
    "WaitlistSlotRequest", "WaitlistMoveRequest", "EstimateRequest", "EstimateResponse",
]
