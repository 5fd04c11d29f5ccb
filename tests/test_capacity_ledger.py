"""
Tests for the Capacity Ledger

Tests cover:
- Capacity resolution: override -> stored default -> configured fallback
- reserve / release bookkeeping and the consumed <= capacity invariant
- Admin defaults and overrides taking effect immediately
- Overview with the derived boarding aggregate
- Reconciliation of consumed against holds
"""

import pytest
from datetime import date, datetime, timedelta

from kennel.errors import UnknownServiceError, ValidationError, SlotValidationError
from kennel.models import CapacityRecord, ReservationHold, HoldStatus, ALL_DAY
from kennel.services.capacity_ledger import (
    CapacityLedger,
    ReserveOutcome,
    require_valid_slot,
)
from kennel.services.reservation_holder import ReservationHolder

DAY = date(2025, 10, 20)
FALLBACKS = {"daycare": 10, "boarding:small": 10, "boarding:large": 8, "trial": 8}


@pytest.fixture
def ledger(db):
    return CapacityLedger(db, fallbacks=dict(FALLBACKS))


def _add_hold(db, service, status, key, day=DAY, slot=ALL_DAY):
    now = datetime(2025, 10, 19, 12, 0)
    db.add(ReservationHold(
        idempotency_key=key,
        service=service,
        date=day,
        slot=slot,
        user_email="owner@example.com",
        status=status,
        created_at=now,
        expires_at=now + timedelta(minutes=10),
    ))
    db.commit()


class TestCapacityResolution:

    def test_fallback_when_no_default_row(self, ledger):
        assert ledger.get_capacity("daycare", DAY) == 10
        assert ledger.get_capacity("boarding:large", DAY) == 8

    def test_stored_default_beats_fallback(self, ledger):
        ledger.set_defaults({"daycare": 14})
        assert ledger.get_capacity("daycare", DAY) == 14

    def test_override_beats_default(self, ledger):
        ledger.set_defaults({"daycare": 14})
        ledger.set_override("daycare", "2025-10-19", "2025-10-21", None, 3)

        assert ledger.get_capacity("daycare", DAY) == 3
        assert ledger.get_capacity("daycare", date(2025, 10, 22)) == 14

    def test_override_range_is_inclusive(self, ledger):
        ledger.set_override("trial", "2025-10-20", "2025-10-22", None, 2)
        assert ledger.get_capacity("trial", date(2025, 10, 20)) == 2
        assert ledger.get_capacity("trial", date(2025, 10, 22)) == 2
        assert ledger.get_capacity("trial", date(2025, 10, 23)) == 8

    def test_override_is_slot_specific(self, ledger):
        ledger.set_override("daycare", DAY, DAY, "16:00", 4)
        assert ledger.get_capacity("daycare", DAY, "16:00") == 4
        assert ledger.get_capacity("daycare", DAY) == 10

    def test_latest_starting_override_wins(self, ledger):
        ledger.set_override("daycare", "2025-10-01", "2025-10-31", None, 5)
        ledger.set_override("daycare", "2025-10-19", "2025-10-21", None, 7)
        assert ledger.get_capacity("daycare", DAY) == 7
        assert ledger.get_capacity("daycare", date(2025, 10, 5)) == 5

    def test_legacy_labels_normalised(self, ledger):
        assert ledger.get_capacity("Boarding Small", DAY) == 10
        assert ledger.get_capacity("Trial Day", DAY) == 8

    def test_unknown_service_rejected(self, ledger):
        with pytest.raises(UnknownServiceError) as exc:
            ledger.get_capacity("boarding", DAY)
        assert exc.value.field == "service"

    def test_bad_date_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc:
            ledger.get_capacity("daycare", "20/10/2025")
        assert exc.value.field == "date"


class TestReserveRelease:

    def test_reserve_counts_consumed(self, ledger):
        assert ledger.reserve("daycare", DAY) == ReserveOutcome.OK
        assert ledger.reserve("daycare", DAY) == ReserveOutcome.OK
        assert ledger.get_consumed("daycare", DAY) == 2
        assert ledger.get_available("daycare", DAY) == 8

    def test_full_leaves_counter_untouched(self, ledger):
        ledger.set_defaults({"trial": 1})
        assert ledger.reserve("trial", DAY) == ReserveOutcome.OK
        assert ledger.reserve("trial", DAY) == ReserveOutcome.FULL
        assert ledger.get_consumed("trial", DAY) == 1

    def test_zero_capacity_is_full(self, ledger):
        ledger.set_override("daycare", DAY, DAY, None, 0)
        assert ledger.reserve("daycare", DAY) == ReserveOutcome.FULL
        assert ledger.get_consumed("daycare", DAY) == 0

    def test_multi_unit_reserve_respects_limit(self, ledger):
        ledger.set_defaults({"boarding:large": 3})
        assert ledger.reserve("boarding:large", DAY, count=2) == ReserveOutcome.OK
        assert ledger.reserve("boarding:large", DAY, count=2) == ReserveOutcome.FULL
        assert ledger.reserve("boarding:large", DAY, count=1) == ReserveOutcome.OK
        assert ledger.get_available("boarding:large", DAY) == 0

    def test_release_is_floored_at_zero(self, ledger):
        ledger.reserve("daycare", DAY)
        ledger.release("daycare", DAY)
        ledger.release("daycare", DAY)
        assert ledger.get_consumed("daycare", DAY) == 0

    def test_release_without_record_is_harmless(self, ledger):
        ledger.release("trial", DAY)
        assert ledger.get_consumed("trial", DAY) == 0

    def test_keys_are_independent(self, ledger):
        ledger.set_defaults({"boarding:small": 1})
        assert ledger.reserve("boarding:small", DAY) == ReserveOutcome.OK
        assert ledger.reserve("boarding:large", DAY) == ReserveOutcome.OK
        assert ledger.reserve("boarding:small", DAY + timedelta(days=1)) == ReserveOutcome.OK
        assert ledger.reserve("boarding:small", DAY, "16:00") == ReserveOutcome.OK

    def test_lowering_capacity_below_consumed(self, ledger):
        for _ in range(3):
            ledger.reserve("daycare", DAY)
        ledger.set_override("daycare", DAY, DAY, None, 2)

        assert ledger.get_available("daycare", DAY) == 0
        assert ledger.reserve("daycare", DAY) == ReserveOutcome.FULL
        assert ledger.get_consumed("daycare", DAY) == 3

    def test_consumed_never_exceeds_capacity_at_reserve_time(self, ledger, db):
        ledger.set_defaults({"daycare": 4})
        outcomes = [ledger.reserve("daycare", DAY) for _ in range(7)]
        ledger.release("daycare", DAY)
        outcomes += [ledger.reserve("daycare", DAY) for _ in range(3)]

        assert outcomes.count(ReserveOutcome.OK) == 5
        record = db.query(CapacityRecord).filter_by(service="daycare", date=DAY).one()
        assert record.consumed == 4
        assert record.consumed <= record.capacity

    def test_count_must_be_positive(self, ledger):
        with pytest.raises(ValidationError):
            ledger.reserve("daycare", DAY, count=0)


class TestAdminOperations:

    def test_set_defaults_upserts(self, ledger):
        ledger.set_defaults({"daycare": 12, "Boarding Large": 6})
        defaults = ledger.set_defaults({"daycare": 11})

        assert defaults["daycare"] == 11
        assert defaults["boarding:large"] == 6
        assert defaults["trial"] == 8

    def test_negative_default_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.set_defaults({"daycare": -1})

    def test_set_override_updates_in_place(self, ledger):
        first = ledger.set_override("daycare", DAY, DAY, None, 12)
        second = ledger.set_override("daycare", DAY, DAY, None, 9)

        assert first.id == second.id
        assert len(ledger.list_overrides()) == 1
        assert ledger.get_capacity("daycare", DAY) == 9

    def test_override_end_before_start_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc:
            ledger.set_override("daycare", "2025-10-22", "2025-10-20", None, 5)
        assert exc.value.field == "date_end"

    def test_clear_override_reverts_immediately(self, ledger):
        ledger.set_override("daycare", DAY, DAY, None, 12)
        assert ledger.get_capacity("daycare", DAY) == 12

        assert ledger.clear_override("daycare", DAY, DAY) == 1
        assert ledger.get_capacity("daycare", DAY) == 10

    def test_override_range_slot_applies_to_holds(self, ledger, db):
        override = ledger.set_override("daycare", DAY, DAY, "16:00-18:00", 1)
        holder = ReservationHolder(db, ledger=ledger, ttl_minutes=10)

        first = holder.create_hold("k-1", "daycare", DAY, "16:00-18:00", "a@example.com")
        second = holder.create_hold("k-2", "daycare", DAY, "16:00 - 18:00", "b@example.com")

        assert override.slot == "16:00"
        assert first.created
        assert second.is_full

    def test_override_slot_must_be_a_window_on_every_date(self, ledger):
        ledger.set_override("daycare", DAY, DAY + timedelta(days=4), "08:00-10:00", 3)
        assert ledger.get_capacity("daycare", DAY + timedelta(days=4), "08:00") == 3

        # 25 October is a Saturday, which opens at 09:00
        with pytest.raises(SlotValidationError):
            ledger.set_override("daycare", DAY, DAY + timedelta(days=5), "08:00", 3)
        with pytest.raises(SlotValidationError):
            ledger.set_override("daycare", DAY, DAY, "12:00", 3)

    def test_clear_override_accepts_any_slot_spelling(self, ledger):
        ledger.set_override("daycare", DAY, DAY, "16:00", 2)

        assert ledger.clear_override("daycare", DAY, DAY, "16:00 - 18:00") == 1
        assert ledger.get_capacity("daycare", DAY, "16:00") == 10

    def test_reset_overrides_for_one_service(self, ledger):
        ledger.set_override("daycare", DAY, DAY, None, 12)
        ledger.set_override("trial", DAY, DAY, None, 1)

        assert ledger.reset_overrides("trial") == 1
        assert ledger.get_capacity("trial", DAY) == 8
        assert ledger.get_capacity("daycare", DAY) == 12

        assert ledger.reset_overrides() == 1
        assert ledger.list_overrides() == []


class TestOverview:

    def test_boarding_aggregate_from_defaults(self, ledger):
        overview = ledger.overview(DAY)

        assert overview["aggregate"]["boarding"]["capacity"] == 18
        assert "boarding" not in overview["resources"]
        assert overview["totals"]["capacity"] == 36
        assert overview["totals"]["utilisation_pct"] == 0

    def test_daycare_override_only_on_its_date(self, ledger):
        ledger.set_override("daycare", DAY, DAY, None, 12)

        assert ledger.overview(DAY)["resources"]["daycare"]["capacity"] == 12
        assert ledger.overview(DAY + timedelta(days=1))["resources"]["daycare"]["capacity"] == 10

        ledger.clear_override("daycare", DAY, DAY)
        assert ledger.overview(DAY)["resources"]["daycare"]["capacity"] == 10

    def test_consumption_and_hold_counts(self, ledger, db):
        ledger.reserve("boarding:small", DAY)
        ledger.reserve("boarding:large", DAY)
        ledger.reserve("boarding:large", DAY)
        _add_hold(db, "boarding:small", HoldStatus.CONFIRMED.value, "k1")
        _add_hold(db, "boarding:large", HoldStatus.ACTIVE.value, "k2")
        _add_hold(db, "boarding:large", HoldStatus.CONFIRMED.value, "k3")
        _add_hold(db, "boarding:large", HoldStatus.EXPIRED.value, "k4")

        overview = ledger.overview(DAY)
        boarding = overview["aggregate"]["boarding"]

        assert boarding["consumed"] == 3
        assert boarding["available"] == 15
        assert boarding["booked"] == 2
        assert boarding["reserved"] == 1
        assert overview["resources"]["boarding:large"]["reserved"] == 1
        assert overview["totals"]["occupied"] == 3
        assert overview["totals"]["utilisation_pct"] == 8  # 3 / 36

    def test_slot_spellings_read_the_same_counter(self, ledger, db):
        ReservationHolder(db, ledger=ledger).create_hold("k-1", "daycare", DAY, "16:00-18:00", "a@example.com")

        for slot in ("16:00", "16:00-18:00", "16:00 - 18:00"):
            overview = ledger.overview(DAY, slot)
            assert overview["slot"] == "16:00"
            assert overview["resources"]["daycare"]["consumed"] == 1
            assert overview["resources"]["daycare"]["reserved"] == 1

    def test_invalid_slot_rejected(self, ledger):
        with pytest.raises(SlotValidationError):
            ledger.overview(DAY, "12:00")


class TestReconcile:

    def test_recounts_from_active_and_confirmed_holds(self, ledger, db):
        for _ in range(3):
            ledger.reserve("daycare", DAY)
        _add_hold(db, "daycare", HoldStatus.ACTIVE.value, "a")
        _add_hold(db, "daycare", HoldStatus.RELEASED.value, "b")

        corrections = ledger.reconcile(DAY)

        assert corrections == [{"service": "daycare", "slot": ALL_DAY, "was": 3, "now": 1}]
        assert ledger.get_consumed("daycare", DAY) == 1

    def test_creates_missing_record(self, ledger, db):
        _add_hold(db, "trial", HoldStatus.CONFIRMED.value, "t1")

        ledger.reconcile(DAY)

        assert ledger.get_consumed("trial", DAY) == 1

    def test_consistent_date_has_no_corrections(self, ledger, db):
        ledger.reserve("daycare", DAY)
        _add_hold(db, "daycare", HoldStatus.ACTIVE.value, "a")
        assert ledger.reconcile(DAY) == []


class TestSlotCheck:

    def test_all_day_needs_no_window(self):
        assert require_valid_slot(date(2025, 10, 19), None) == ALL_DAY
        assert require_valid_slot(date(2025, 10, 19), "") == ALL_DAY

    def test_window_slot_checked_against_day(self):
        assert require_valid_slot(date(2025, 10, 19), "16:00") == "16:00"
        with pytest.raises(SlotValidationError):
            require_valid_slot(date(2025, 10, 19), "10:00")

    def test_range_stored_under_window_start(self):
        assert require_valid_slot(date(2025, 10, 18), "09:00 - 11:00") == "09:00"
