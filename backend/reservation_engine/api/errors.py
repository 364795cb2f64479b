"""
Maps reservation errors to HTTP responses.

Body: {"code": ..., "message": ..., "details": {...}}
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from reservation_engine.core.errors import ErrorCode, ReservationError
from reservation_engine.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.POLICY_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NO_AVAILABILITY: status.HTTP_409_CONFLICT,
    ErrorCode.WAITLIST_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.TABLE_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.error if status_code >= 500 else logger.info
    log("request_rejected", code=exc.code.value, message=exc.message, status_code=status_code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReservationError, reservation_error_handler)
