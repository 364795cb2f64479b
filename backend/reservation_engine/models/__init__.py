from reservation_engine.models.branch import Branch
from reservation_engine.models.table import Table, TableStatus
from reservation_engine.models.schedule import TimeSlotDefinition, BlackoutWindow
from reservation_engine.models.booking import Booking, BookingStatus, CONFIRMED_STATUSES, TERMINAL_STATUSES

__all__ = [
    "Branch",
    "Table", "TableStatus",
    "TimeSlotDefinition", "BlackoutWindow",
    "Booking", "BookingStatus", "CONFIRMED_STATUSES", "TERMINAL_STATUSES",
]
