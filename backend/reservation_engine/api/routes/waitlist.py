"""
Waitlist endpoints for branch staff.
"""

import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.api.dependencies import get_session, get_waitlist_coordinator
from reservation_engine.schemas.booking import BookingResponse
from reservation_engine.schemas.waitlist import (
    EstimateMode,
    EstimateRequest,
    EstimateResponse,
    WaitlistMoveRequest,
    WaitlistSlotRequest,
)
from reservation_engine.services.waitlist_service import WaitlistCoordinator

router = APIRouter(tags=["Waitlist"])


@router.get("/branches/{branch_id}/waitlist", response_model=list[BookingResponse])
async def get_waitlist(
    branch_id: int,
    day: Optional[datetime.date] = Query(None, alias="date"),
    coordinator: WaitlistCoordinator = Depends(get_waitlist_coordinator),
    db: AsyncSession = Depends(get_session),
):
    """Waitlisted bookings ordered by date, then position."""
    return await coordinator.get_waitlist(db, branch_id, day)


@router.post("/branches/{branch_id}/waitlist/process", response_model=BookingResponse)
async def process_next_waitlist(
    branch_id: int,
    payload: WaitlistSlotRequest,
    coordinator: WaitlistCoordinator = Depends(get_waitlist_coordinator),
):
    """Promote the first waitlisted booking for the slot onto a free table."""
    return await coordinator.process_next_waitlist(branch_id, payload.date, payload.time, payload.actor)


@router.post("/branches/{branch_id}/waitlist/notify", response_model=list[BookingResponse])
async def notify_waitlisted_customers(
    branch_id: int,
    payload: WaitlistSlotRequest,
    coordinator: WaitlistCoordinator = Depends(get_waitlist_coordinator),
):
    return await coordinator.notify_waitlisted_customers(branch_id, payload.date, payload.time)


@router.post("/branches/{branch_id}/waitlist/estimates", response_model=EstimateResponse)
async def update_estimates(
    branch_id: int,
    payload: EstimateRequest,
    coordinator: WaitlistCoordinator = Depends(get_waitlist_coordinator),
):
    if payload.mode == EstimateMode.TURNOVER:
        updated = await coordinator.update_expected_seating_times(branch_id, payload.date)
    else:
        updated = await coordinator.update_estimated_wait_times(branch_id, payload.date)
    return EstimateResponse(branch_id=branch_id, date=payload.date, mode=payload.mode, updated=updated)


@router.post("/bookings/{booking_id}/waitlist/move", response_model=BookingResponse)
async def move_in_waitlist(
    booking_id: int,
    payload: WaitlistMoveRequest,
    coordinator: WaitlistCoordinator = Depends(get_waitlist_coordinator),
):
    return await coordinator.move_in_waitlist(booking_id, payload.direction, payload.steps, payload.actor)
