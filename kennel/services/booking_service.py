"""
Booking Service

Turns a paid hold into a Booking. The price is computed before the hold
is touched and frozen into the booking as a snapshot, so a booking keeps
the pricing model it was charged under.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PersistenceError, PricingValidationError
from ..models.booking import Booking
from ..models.capacity import BOARDING_KEYS, ServiceKey
from ..models.reservation_hold import HoldStatus, ReservationHold
from ..utils.logging_config import get_logger
from ..utils.metrics import record_booking_confirmed
from .pricing_engine import BoardingInput, PricingEngine, PricingResult
from .reservation_holder import ReservationHolder

logger = get_logger(__name__)


class BookingService:
    def __init__(
        self,
        db: Session,
        holder: Optional[ReservationHolder] = None,
        engine: Optional[PricingEngine] = None
    ):
        self.db = db
        self.holder = holder or ReservationHolder(db)
        self.engine = engine or PricingEngine()

    def get_booking_for_hold(self, hold_id: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.hold_id == hold_id).first()

    def price_hold(
        self,
        hold: ReservationHold,
        model,
        stay: Optional[BoardingInput] = None
    ) -> PricingResult:
        """Price the service a hold is for; boarding needs the stay details"""
        service = ServiceKey(hold.service)
        if service == ServiceKey.DAYCARE:
            return self.engine.compute_daycare(model)
        if service == ServiceKey.TRIAL:
            return self.engine.compute_trial(model)
        if service in BOARDING_KEYS:
            if stay is None:
                raise PricingValidationError("Boarding requires stay details", field="boarding")
            return self.engine.compute_boarding(stay, model)
        raise PricingValidationError(f"No pricing for service {service.value}", field="service")

    def confirm_booking(
        self,
        hold_id: str,
        pricing: PricingResult,
        payment_reference: Optional[str] = None,
        currency: Optional[str] = None
    ) -> Optional[Booking]:
        """
        Confirm an active hold and store its booking in one transaction.

        A hold that is already confirmed returns its existing booking, so a
        repeated payment callback is harmless.

        Returns:
            The booking, or None when the hold is missing or no longer active
        """
        existing = self.get_booking_for_hold(hold_id)
        if existing is not None:
            return existing

        hold = self.holder.get_hold(hold_id)
        if hold is None:
            return None

        snapshot = self.engine.payment_snapshot(pricing, currency)

        if not self.holder.confirm_hold(hold_id, payment_reference, commit=False):
            self.db.rollback()
            # Lost to a concurrent callback for the same hold
            replayed = self.get_booking_for_hold(hold_id)
            if replayed is not None:
                return replayed
            logger.warning(f"Hold {hold_id} is {hold.status}, booking not created")
            return None

        booking = Booking(
            hold_id=hold.id,
            service=hold.service,
            date=hold.date,
            slot=hold.slot,
            user_email=hold.user_email,
            dog_id=hold.dog_id,
            total=snapshot.total,
            currency=snapshot.currency,
            pricing_model=snapshot.model.value,
            pricing_snapshot=snapshot.to_dict(),
            payment_reference=payment_reference,
        )
        try:
            self.db.add(booking)
            self.db.commit()
            self.db.refresh(booking)
        except SQLAlchemyError as e:
            # Rolls the hold back to active as well; the sweep reclaims it if no retry comes
            self.db.rollback()
            logger.error(f"Failed to store booking for hold {hold_id}: {e}", exc_info=True)
            raise PersistenceError("Booking could not be stored, please retry") from e

        record_booking_confirmed(booking.service, booking.pricing_model)
        logger.booking_confirmed(booking.id, hold_id, str(booking.total), booking.pricing_model)
        return booking

    def handle_payment_result(
        self,
        hold_id: str,
        success: bool,
        model,
        stay: Optional[BoardingInput] = None,
        payment_reference: Optional[str] = None
    ) -> Optional[Booking]:
        """
        Apply the payment gateway's verdict to a hold.

        Success prices and confirms; failure releases the hold.
        """
        if not success:
            self.holder.release_hold(hold_id)
            return None

        existing = self.get_booking_for_hold(hold_id)
        if existing is not None:
            return existing

        hold = self.holder.get_hold(hold_id)
        if hold is None or hold.status != HoldStatus.ACTIVE.value:
            return None

        pricing = self.price_hold(hold, model, stay)
        return self.confirm_booking(hold_id, pricing, payment_reference)
