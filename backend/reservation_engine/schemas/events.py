"""
Lifecycle events emitted after a committed transition.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ActorRole(str, Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    MERCHANT = "merchant"
    SYSTEM = "system"


class Actor(BaseModel):
    id: Optional[int] = None
    role: ActorRole = ActorRole.STAFF


SYSTEM_ACTOR = Actor(id=None, role=ActorRole.SYSTEM)


class LifecycleEventType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_WAITLISTED = "booking_waitlisted"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_DENIED = "booking_denied"
    BOOKING_CANCELLED = "booking_cancelled"
    CUSTOMER_ARRIVED = "customer_arrived"
    CUSTOMER_SEATED = "customer_seated"
    BOOKING_COMPLETED = "booking_completed"
    WAITLIST_PROMOTED = "waitlist_promoted"
    WAITLIST_POSITION_CHANGED = "waitlist_position_changed"
    WAITLIST_TABLE_AVAILABLE = "waitlist_table_available"


class LifecycleEvent(BaseModel):
    type: LifecycleEventType
    booking_id: int
    branch_id: int
    customer_id: int
    actor_id: Optional[int] = None
    actor_role: ActorRole = ActorRole.SYSTEM
    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
