# Services package
from .hours_policy import (
    TimeWindow, windows_for_date, is_slot_valid, canonical_slot, enumerate_slots,
    is_time_within_windows, day_name, is_weekend, is_closed
)
from .pricing_engine import (
    PricingEngine, PricingModel, PricingResult, PaymentSnapshot,
    BoardingInput, RateTable, get_pricing_engine, is_pm_label
)
from .capacity_ledger import CapacityLedger, CapacitySnapshot, ReserveOutcome
from .reservation_holder import ReservationHolder, HoldOutcome, HoldResult
from .booking_service import BookingService
from .trial import TrialEligibility, trial_eligibility

__all__ = [
    "TimeWindow", "windows_for_date", "is_slot_valid", "canonical_slot", "enumerate_slots",
    "is_time_within_windows", "day_name", "is_weekend", "is_closed",
    "PricingEngine", "PricingModel", "PricingResult", "PaymentSnapshot",
    "BoardingInput", "RateTable", "get_pricing_engine", "is_pm_label",
    "CapacityLedger", "CapacitySnapshot", "ReserveOutcome",
    "ReservationHolder", "HoldOutcome", "HoldResult",
    "BookingService",
    "TrialEligibility", "trial_eligibility",
]
