"""
Tests for the Booking Service

Tests cover:
- Paid hold -> confirmed hold + booking with a frozen pricing snapshot
- Repeated payment callbacks returning the same booking
- Failed payment releasing the hold
- Holds that are no longer active never producing a booking
"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from kennel.errors import PersistenceError, PricingValidationError
from kennel.models import Booking, HoldStatus
from kennel.services.booking_service import BookingService
from kennel.services.capacity_ledger import CapacityLedger
from kennel.services.pricing_engine import BoardingInput, PricingEngine, PricingModel
from kennel.services.reservation_holder import ReservationHolder

DAY = date(2025, 10, 20)
T0 = datetime(2025, 10, 18, 9, 0)


@pytest.fixture
def ledger(db):
    return CapacityLedger(db, fallbacks={"daycare": 10, "boarding:small": 10, "boarding:large": 8, "trial": 8})


@pytest.fixture
def holder(db, ledger):
    return ReservationHolder(db, ledger=ledger, ttl_minutes=10)


@pytest.fixture
def service(db, holder):
    return BookingService(db, holder=holder, engine=PricingEngine(timezone="Europe/Dublin"))


def _hold(holder, key="key-1", service="daycare", slot=None):
    return holder.create_hold(key, service, DAY, slot, "owner@example.com", now=T0).hold


class TestConfirmBooking:

    def test_creates_booking_with_snapshot(self, service, holder, ledger):
        hold = _hold(holder)
        pricing = service.engine.compute_daycare(PricingModel.CALENDAR_V2)

        booking = service.confirm_booking(hold.id, pricing, payment_reference="pi_1", currency="eur")

        assert booking.hold_id == hold.id
        assert booking.total == Decimal("20.00")
        assert booking.currency == "EUR"
        assert booking.pricing_model == "calendar_v2"
        assert booking.pricing_snapshot["total"] == "20.00"
        assert booking.pricing_snapshot["breakdown"]["model"] == "calendar_v2"
        assert holder.get_hold(hold.id).status == HoldStatus.CONFIRMED.value
        assert ledger.get_consumed("daycare", DAY) == 1

    def test_second_confirm_returns_existing_booking(self, service, holder, db):
        hold = _hold(holder)
        pricing = service.engine.compute_daycare("calendar_v2")

        first = service.confirm_booking(hold.id, pricing)
        second = service.confirm_booking(hold.id, pricing)

        assert second.id == first.id
        assert db.query(Booking).count() == 1

    def test_released_hold_is_not_booked(self, service, holder, db):
        hold = _hold(holder)
        holder.release_hold(hold.id)

        assert service.confirm_booking(hold.id, service.engine.compute_daycare("calendar_v2")) is None
        assert db.query(Booking).count() == 0

    def test_unknown_hold(self, service):
        assert service.confirm_booking("missing", service.engine.compute_daycare("hours_v1")) is None

    def test_store_failure_leaves_hold_active(self, service, holder, db):
        hold = _hold(holder)
        error = OperationalError("INSERT INTO bookings", {}, Exception("database is locked"))

        with patch.object(db, "commit", side_effect=error):
            with pytest.raises(PersistenceError):
                service.confirm_booking(hold.id, service.engine.compute_daycare("calendar_v2"))

        assert holder.get_hold(hold.id).status == HoldStatus.ACTIVE.value
        assert db.query(Booking).count() == 0


class TestPaymentResult:

    def test_success_prices_and_confirms(self, service, holder):
        hold = _hold(holder, service="trial")

        booking = service.handle_payment_result(hold.id, True, model="hours_v1", payment_reference="pi_9")

        assert booking.total == Decimal("20.00")
        assert booking.pricing_model == "hours_v1"
        assert booking.payment_reference == "pi_9"

    def test_boarding_priced_from_stay(self, service, holder):
        hold = _hold(holder, service="boarding:small")
        stay = BoardingInput(1, "2025-10-20T10:00", "2025-10-22T17:00", checkout_time_label="16:00-18:00")

        booking = service.handle_payment_result(hold.id, True, model="calendar_v2", stay=stay)

        assert booking.total == Decimal("60.00")
        assert booking.pricing_snapshot["breakdown"]["nights"] == 2

    def test_boarding_without_stay_rejected(self, service, holder):
        hold = _hold(holder, service="boarding:large")

        with pytest.raises(PricingValidationError) as exc:
            service.handle_payment_result(hold.id, True, "calendar_v2")
        assert exc.value.field == "boarding"
        assert holder.get_hold(hold.id).status == HoldStatus.ACTIVE.value

    def test_failure_releases_hold(self, service, holder, ledger):
        hold = _hold(holder)

        assert service.handle_payment_result(hold.id, False, "calendar_v2") is None
        assert holder.get_hold(hold.id).status == HoldStatus.RELEASED.value
        assert ledger.get_consumed("daycare", DAY) == 0

    def test_success_after_expiry_books_nothing(self, service, holder, db):
        hold = _hold(holder)
        holder.sweep_expired(T0 + timedelta(minutes=11))

        assert service.handle_payment_result(hold.id, True, "calendar_v2") is None
        assert db.query(Booking).count() == 0

    def test_repeated_success_is_idempotent(self, service, holder, db):
        hold = _hold(holder)

        first = service.handle_payment_result(hold.id, True, "calendar_v2")
        second = service.handle_payment_result(hold.id, True, "calendar_v2")

        assert first.id == second.id
        assert db.query(Booking).count() == 1

    def test_losing_concurrent_callback_returns_winning_booking(self, service, holder, db):
        hold = _hold(holder)
        winner = service.handle_payment_result(hold.id, True, "calendar_v2", payment_reference="pi_1")

        # The second callback checked for a booking before the first one committed
        real_lookup = service.get_booking_for_hold
        lookups = []

        def lookup(hold_id):
            lookups.append(hold_id)
            return None if len(lookups) == 1 else real_lookup(hold_id)

        with patch.object(service, "get_booking_for_hold", side_effect=lookup):
            replay = service.confirm_booking(hold.id, service.engine.compute_daycare("calendar_v2"), "pi_1")

        assert replay.id == winner.id
        assert db.query(Booking).count() == 1
