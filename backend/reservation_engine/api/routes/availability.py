"""
Availability endpoints. Read-only; nothing here claims a table.
"""

import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.api.dependencies import get_availability_engine, get_session
from reservation_engine.schemas.availability import AvailabilityResult, NextAvailableTime, RangeAvailability
from reservation_engine.schemas.booking import SeatingPreference
from reservation_engine.services.availability_service import AvailabilityEngine

router = APIRouter(prefix="/branches/{branch_id}/availability", tags=["Availability"])


@router.get("", response_model=AvailabilityResult)
async def check_availability(
    branch_id: int,
    day: datetime.date = Query(..., alias="date"),
    at: datetime.time = Query(..., alias="time"),
    party_size: int = Query(..., ge=1),
    seating_preference: SeatingPreference = Query(SeatingPreference.NO_PREFERENCE),
    engine: AvailabilityEngine = Depends(get_availability_engine),
    db: AsyncSession = Depends(get_session),
):
    """
    Can the party be seated at this time? Rule rejections come back with
    available=false and a reason code rather than an error status.
    """
    return await engine.check_availability(db, branch_id, day, at, party_size, seating_preference.value)


@router.get("/range", response_model=RangeAvailability)
async def get_availability_for_range(
    branch_id: int,
    start_date: datetime.date = Query(...),
    end_date: datetime.date = Query(...),
    party_size: int = Query(..., ge=1),
    engine: AvailabilityEngine = Depends(get_availability_engine),
    db: AsyncSession = Depends(get_session),
):
    """Per-day, per-slot calendar. Ranges longer than 30 days are truncated."""
    return await engine.get_availability_for_range(db, branch_id, start_date, end_date, party_size)


@router.get("/next", response_model=NextAvailableTime)
async def find_next_available_time(
    branch_id: int,
    day: datetime.date = Query(..., alias="date"),
    from_time: datetime.time = Query(...),
    party_size: int = Query(..., ge=1),
    engine: AvailabilityEngine = Depends(get_availability_engine),
    db: AsyncSession = Depends(get_session),
):
    next_time = await engine.find_next_available_time(db, branch_id, day, from_time, party_size)
    return NextAvailableTime(
        branch_id=branch_id,
        date=day,
        from_time=from_time,
        party_size=party_size,
        next_available_time=next_time,
    )
