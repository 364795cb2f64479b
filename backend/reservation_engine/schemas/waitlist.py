"""
Pydantic schemas for waitlist operations.
"""

import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from reservation_engine.schemas.booking import ActorPayload


class WaitlistStatus(BaseModel):
    is_waitlisted: bool
    position: Optional[int] = None


class MoveDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class EstimateMode(str, Enum):
    SIMPLE = "simple"
    TURNOVER = "turnover"


class WaitlistSlotRequest(ActorPayload):
    date: datetime.date
    time: datetime.time


class WaitlistMoveRequest(ActorPayload):
    direction: MoveDirection
    steps: int = Field(default=1, ge=1)


class EstimateRequest(BaseModel):
    date: datetime.date
    mode: EstimateMode = EstimateMode.SIMPLE


class EstimateResponse(BaseModel):
    branch_id: int
    date: datetime.date
    mode: EstimateMode
    updated: int
