"""
Reservation error taxonomy.

Every rejection carries a machine-readable code plus a human-readable message
so callers can render it without re-deriving business rules. The HTTP layer
maps codes to status codes in one place (see api/errors.py).
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    POLICY_VIOLATION = "POLICY_VIOLATION"
    NO_AVAILABILITY = "NO_AVAILABILITY"
    WAITLIST_FULL = "WAITLIST_FULL"
    TABLE_UNAVAILABLE = "TABLE_UNAVAILABLE"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL"


class ReservationError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(code={self.code.value}, message={self.message!r})>"


class PolicyViolationError(ReservationError):
    code = ErrorCode.POLICY_VIOLATION


class NoAvailabilityError(ReservationError):
    code = ErrorCode.NO_AVAILABILITY


class WaitlistFullError(ReservationError):
    code = ErrorCode.WAITLIST_FULL


class TableUnavailableError(ReservationError):
    code = ErrorCode.TABLE_UNAVAILABLE


class InvalidStateTransitionError(ReservationError):
    code = ErrorCode.INVALID_STATE_TRANSITION


class NotFoundError(ReservationError):
    code = ErrorCode.NOT_FOUND


class InternalError(ReservationError):
    code = ErrorCode.INTERNAL
