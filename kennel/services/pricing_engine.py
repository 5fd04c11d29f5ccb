"""
Pricing Engine Service

Computes prices for daycare, trial days and boarding under an explicitly
chosen pricing model:

1. hours_v1 (legacy): boarding nights come from elapsed hours rounded up,
   late-pickup surcharge only when picked up PM within 48 hours.
2. calendar_v2: boarding nights are calendar days between drop-off and
   pick-up, late-pickup surcharge whenever the pick-up slot is 16:00 or later.

Callers always pass the model. The engine never infers it, because a
confirmed booking must keep the model it was priced under. Results are
never persisted here; the booking service snapshots them at confirmation.
"""

import enum
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Union

from ..config import settings
from ..errors import PricingValidationError
from ..utils.clock import parse_iso_datetime, to_local, to_naive_utc

TWO_PLACES = Decimal("0.01")
PM_LABEL_PATTERN = re.compile(r"(\d{1,2}):(\d{2})")
PM_START_HOUR = 16


class PricingModel(str, enum.Enum):
    HOURS_V1 = "hours_v1"
    CALENDAR_V2 = "calendar_v2"


class PickupWindow(str, enum.Enum):
    AM = "AM"
    PM = "PM"


@dataclass(frozen=True)
class RateTable:
    """Flat fees and nightly rates for one pricing model, in the business currency"""
    daycare_flat: Decimal
    trial_flat: Decimal
    night_one_dog: Decimal
    night_two_dogs: Decimal
    late_pickup: Decimal

    def per_night(self, dog_count: int) -> Decimal:
        return self.night_two_dogs if dog_count >= 2 else self.night_one_dog


HOURS_V1_RATES = RateTable(
    daycare_flat=Decimal("20"),
    trial_flat=Decimal("20"),
    night_one_dog=Decimal("25"),
    night_two_dogs=Decimal("40"),
    late_pickup=Decimal("10"),
)


def calendar_v2_rates_from_settings() -> RateTable:
    return RateTable(
        daycare_flat=settings.pricing_v2_daycare_flat,
        trial_flat=settings.pricing_v2_trial_flat,
        night_one_dog=settings.pricing_v2_night_one_dog,
        night_two_dogs=settings.pricing_v2_night_two_dogs,
        late_pickup=settings.pricing_v2_late_pickup,
    )


@dataclass
class BoardingInput:
    """Boarding stay request; timestamps are ISO strings or datetimes"""
    dog_count: int
    checkin: Union[str, datetime]
    checkout: Union[str, datetime]
    checkout_time_label: Optional[str] = None  # calendar_v2
    pickup_window: Optional[str] = None  # hours_v1: "AM" / "PM"


@dataclass
class PricingResult:
    """Computed price; only `total` and `model` are always present"""
    total: Decimal
    model: PricingModel
    nights: Optional[int] = None
    per_night: Optional[Decimal] = None
    pm_surcharge: Optional[Decimal] = None

    def to_dict(self) -> Dict:
        data = {"total": str(self.total), "model": self.model.value}
        if self.nights is not None:
            data["nights"] = self.nights
        if self.per_night is not None:
            data["per_night"] = str(self.per_night)
        if self.pm_surcharge is not None:
            data["pm_surcharge"] = str(self.pm_surcharge)
        return data


@dataclass
class PaymentSnapshot:
    """What the payment collaborator charges"""
    total: Decimal
    currency: str
    model: PricingModel
    breakdown: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "total": str(self.total),
            "currency": self.currency,
            "model": self.model.value,
            "breakdown": self.breakdown,
        }


def is_pm_label(label: Optional[str]) -> bool:
    """True when the first HH:mm in a slot label is 16:00 or later"""
    if not label:
        return False
    match = PM_LABEL_PATTERN.search(label)
    if not match:
        return False
    return int(match.group(1)) >= PM_START_HOUR


def _money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class PricingEngine:
    """
    Versioned price calculator.

    Boarding formulas:
    - hours_v1: nights = max(1, ceil(ceil(elapsed_hours) / 24));
      +late_pickup if pickup_window == PM and elapsed_hours < 48
    - calendar_v2: nights = max(1, checkout_date - checkin_date) in local time;
      +late_pickup if checkout_time_label is PM
    total = nights * per_night + surcharge
    """

    def __init__(
        self,
        v2_rates: Optional[RateTable] = None,
        timezone: Optional[str] = None,
    ):
        self.v1_rates = HOURS_V1_RATES
        self.v2_rates = v2_rates or calendar_v2_rates_from_settings()
        self.timezone = timezone or settings.business_timezone

    def _resolve_model(self, model: Union[PricingModel, str]) -> PricingModel:
        try:
            return PricingModel(model)
        except ValueError:
            raise PricingValidationError(
                f"Unknown pricing model '{model}'. Expected one of: "
                + ", ".join(m.value for m in PricingModel),
                field="model",
            )

    def _rates(self, model: PricingModel) -> RateTable:
        return self.v1_rates if model == PricingModel.HOURS_V1 else self.v2_rates

    def compute_daycare(self, model: Union[PricingModel, str]) -> PricingResult:
        model = self._resolve_model(model)
        return PricingResult(total=_money(self._rates(model).daycare_flat), model=model)

    def compute_trial(self, model: Union[PricingModel, str]) -> PricingResult:
        model = self._resolve_model(model)
        return PricingResult(total=_money(self._rates(model).trial_flat), model=model)

    def compute_boarding(
        self,
        stay: BoardingInput,
        model: Union[PricingModel, str]
    ) -> PricingResult:
        """
        Price a boarding stay.

        Raises:
            PricingValidationError: dog_count < 1, unparseable timestamps,
                or checkout not after checkin
        """
        model = self._resolve_model(model)
        checkin, checkout = self._validate_stay(stay)

        if model == PricingModel.CALENDAR_V2:
            return self._boarding_calendar_v2(stay, checkin, checkout)
        return self._boarding_hours_v1(stay, checkin, checkout)

    def _validate_stay(self, stay: BoardingInput):
        if isinstance(stay.dog_count, bool) or not isinstance(stay.dog_count, int):
            raise PricingValidationError("dog_count must be an integer", field="dog_count")
        if stay.dog_count < 1:
            raise PricingValidationError("dog_count must be at least 1", field="dog_count")

        try:
            checkin = to_local(parse_iso_datetime(stay.checkin), self.timezone)
        except (TypeError, ValueError):
            raise PricingValidationError(f"Invalid checkin timestamp: {stay.checkin!r}", field="checkin")
        try:
            checkout = to_local(parse_iso_datetime(stay.checkout), self.timezone)
        except (TypeError, ValueError):
            raise PricingValidationError(f"Invalid checkout timestamp: {stay.checkout!r}", field="checkout")

        if to_naive_utc(checkout) <= to_naive_utc(checkin):
            raise PricingValidationError("checkout must be after checkin", field="checkout")

        return checkin, checkout

    def _elapsed_hours(self, checkin: datetime, checkout: datetime) -> float:
        # Compare in UTC so DST changes count real elapsed time
        return (to_naive_utc(checkout) - to_naive_utc(checkin)).total_seconds() / 3600

    def _boarding_hours_v1(self, stay: BoardingInput, checkin: datetime, checkout: datetime) -> PricingResult:
        rates = self.v1_rates
        per_night = rates.per_night(stay.dog_count)

        actual_hours = self._elapsed_hours(checkin, checkout)
        hours_rounded_up = math.ceil(actual_hours)
        nights = max(1, math.ceil(hours_rounded_up / 24))

        pickup = (stay.pickup_window or "").strip().upper()
        pm_surcharge = Decimal("0")
        if pickup == PickupWindow.PM.value and actual_hours < 48:
            pm_surcharge = rates.late_pickup

        return PricingResult(
            total=_money(per_night * nights + pm_surcharge),
            model=PricingModel.HOURS_V1,
            nights=nights,
            per_night=_money(per_night),
            pm_surcharge=_money(pm_surcharge),
        )

    def _boarding_calendar_v2(self, stay: BoardingInput, checkin: datetime, checkout: datetime) -> PricingResult:
        rates = self.v2_rates
        per_night = rates.per_night(stay.dog_count)

        nights = max(1, (checkout.date() - checkin.date()).days)
        pm_surcharge = rates.late_pickup if is_pm_label(stay.checkout_time_label) else Decimal("0")

        return PricingResult(
            total=_money(per_night * nights + pm_surcharge),
            model=PricingModel.CALENDAR_V2,
            nights=nights,
            per_night=_money(per_night),
            pm_surcharge=_money(pm_surcharge),
        )

    def payment_snapshot(self, result: PricingResult, currency: Optional[str] = None) -> PaymentSnapshot:
        """Charge amount handed to the payment gateway"""
        return PaymentSnapshot(
            total=result.total,
            currency=(currency or settings.currency).upper(),
            model=result.model,
            breakdown=result.to_dict(),
        )


def get_pricing_engine() -> PricingEngine:
    """Factory used as a FastAPI dependency"""
    return PricingEngine()
