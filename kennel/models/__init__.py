# Models package
from .capacity import (
    CapacityDefault,
    CapacityOverride,
    CapacityRecord,
    ServiceKey,
    BOARDING_KEYS,
    ALL_DAY,
    normalize_service,
    normalize_slot,
)
from .reservation_hold import ReservationHold, HoldStatus, CONSUMING_STATUSES
from .booking import Booking, BookingStatus

__all__ = [
    "CapacityDefault", "CapacityOverride", "CapacityRecord",
    "ServiceKey", "BOARDING_KEYS", "ALL_DAY", "normalize_service", "normalize_slot",
    "ReservationHold", "HoldStatus", "CONSUMING_STATUSES",
    "Booking", "BookingStatus",
]
