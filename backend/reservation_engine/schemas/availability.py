"""
Pydantic schemas for availability results.
"""

import datetime
from typing import Optional

from pydantic import BaseModel

from reservation_engine.core.errors import ErrorCode


class TableSummary(BaseModel):
    id: int
    table_number: str
    capacity: int
    location_type: str
    table_type: str

    model_config = {"from_attributes": True}


class AvailabilityResult(BaseModel):
    available: bool
    candidate_tables: list[TableSummary] = []
    reason_code: Optional[ErrorCode] = None
    reason: Optional[str] = None
    can_waitlist: bool = False
    next_available_time: Optional[datetime.time] = None

    @property
    def recommended_table(self) -> Optional[TableSummary]:
        return self.candidate_tables[0] if self.candidate_tables else None


class SlotAvailability(BaseModel):
    time: datetime.time
    available: bool
    tables_available: int = 0
    slot_name: Optional[str] = None
    reason: Optional[str] = None


class DayAvailability(BaseModel):
    date: datetime.date
    available: bool
    reason: Optional[str] = None
    slots: list[SlotAvailability] = []


class RangeAvailability(BaseModel):
    branch_id: int
    party_size: int
    start_date: datetime.date
    end_date: datetime.date
    truncated: bool = False
    days: list[DayAvailability] = []
    cached: bool = False


class NextAvailableTime(BaseModel):
    branch_id: int
    date: datetime.date
    from_time: datetime.time
    party_size: int
    next_available_time: Optional[datetime.time] = None
