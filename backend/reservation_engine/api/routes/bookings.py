"""
Booking endpoints: creation, queries and lifecycle actions.

Authentication is handled upstream; the acting user is passed in the request
body (actor_id, actor_role) and only recorded, never verified here.
"""

import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from reservation_engine.api.dependencies import get_booking_manager
from reservation_engine.models.booking import BookingStatus
from reservation_engine.schemas.booking import (
    ActorPayload,
    ApproveRequest,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    CancelRequest,
    DenyRequest,
    SeatRequest,
)
from reservation_engine.schemas.events import Actor, ActorRole
from reservation_engine.services.booking_service import BookingLifecycleManager

router = APIRouter(tags=["Bookings"])


@router.post(
    "/branches/{branch_id}/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    branch_id: int,
    booking_data: BookingCreate,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    """
    Request a table.

    The booking comes back approved (table free, no approval needed),
    pending (staff approval required) or waitlisted with a position.
    """
    actor = Actor(id=booking_data.customer_id, role=ActorRole.CUSTOMER)
    return await manager.create_booking(booking_data.to_request(branch_id), actor)


@router.get("/branches/{branch_id}/bookings", response_model=BookingListResponse)
async def list_bookings(
    branch_id: int,
    booking_date: Optional[datetime.date] = Query(None, alias="date"),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    bookings, total = await manager.list_bookings(branch_id, booking_date, booking_status, limit, offset)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, manager: BookingLifecycleManager = Depends(get_booking_manager)):
    return await manager.get_booking(booking_id)


@router.post("/bookings/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: int,
    payload: ApproveRequest,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    return await manager.approve_booking(booking_id, payload.actor, payload.table_id, payload.notes)


@router.post("/bookings/{booking_id}/deny", response_model=BookingResponse)
async def deny_booking(
    booking_id: int,
    payload: DenyRequest,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    return await manager.deny_booking(booking_id, payload.reason, payload.actor)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    payload: CancelRequest,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    """Cancel from any non-terminal state. Releases the table and closes any waitlist gap."""
    return await manager.cancel_booking(booking_id, payload.reason, payload.actor)


@router.post("/bookings/{booking_id}/arrive", response_model=BookingResponse)
async def mark_arrived(
    booking_id: int,
    payload: ActorPayload,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    return await manager.mark_arrived(booking_id, payload.actor)


@router.post("/bookings/{booking_id}/seat", response_model=BookingResponse)
async def mark_seated(
    booking_id: int,
    payload: SeatRequest,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    """Seat the party, optionally at a different table than the one assigned."""
    return await manager.mark_seated(booking_id, payload.actor, payload.table_id)


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: int,
    payload: ActorPayload,
    manager: BookingLifecycleManager = Depends(get_booking_manager),
):
    return await manager.complete_booking(booking_id, payload.actor)
