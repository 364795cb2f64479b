"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter, Depends
from reservation_engine.api.dependencies import bind_log_context
from reservation_engine.api.routes import availability, bookings, waitlist

api_router = APIRouter(prefix="/api/v1", dependencies=[Depends(bind_log_context)])
api_router.include_router(bookings.router)
api_router.include_router(availability.router)
api_router.include_router(waitlist.router)
