"""
Capacity Ledger Service

Single source of truth for how much capacity exists and how much is
consumed per (service, date, slot).

Effective capacity = override[service, date in range, slot]
                  ?? default[service]
                  ?? configured fallback

Capacity is resolved on every call (no cache), so clearing an override
takes effect immediately. `consumed` is only written through reserve(),
release() and reconcile(); reserve() is a single conditional UPDATE so two
concurrent callers cannot both take the last unit.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Union

from sqlalchemy import and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import SlotValidationError, ValidationError
from ..models.capacity import (
    ALL_DAY,
    BOARDING_KEYS,
    CapacityDefault,
    CapacityOverride,
    CapacityRecord,
    ServiceKey,
    normalize_service,
    normalize_slot,
)
from ..models.reservation_hold import CONSUMING_STATUSES, HoldStatus, ReservationHold
from ..utils.clock import parse_iso_date, utcnow
from ..utils.db_helpers import ConditionalCounter, insert_if_absent, with_read_retries
from .hours_policy import canonical_slot

logger = logging.getLogger(__name__)

DateLike = Union[date, str]


class ReserveOutcome(str, enum.Enum):
    OK = "ok"
    FULL = "full"


@dataclass
class CapacitySnapshot:
    service: ServiceKey
    date: date
    slot: str
    capacity: int
    consumed: int

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.consumed)

    def to_dict(self) -> Dict:
        return {
            "service": self.service.value,
            "date": self.date.isoformat(),
            "slot": None if self.slot == ALL_DAY else self.slot,
            "capacity": self.capacity,
            "consumed": self.consumed,
            "remaining": self.available,
        }


def require_date(value: DateLike, field: str = "date") -> date:
    parsed = parse_iso_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid {field} '{value}', expected YYYY-MM-DD", field=field)
    return parsed


def require_valid_slot(day: date, slot: Optional[str]) -> str:
    """
    Normalise a slot and check it against the opening windows for the day.

    Ranges and labels are stored under their window start, so every
    spelling of a window shares one counter.
    """
    slot = normalize_slot(slot)
    if slot == ALL_DAY:
        return slot
    window_start = canonical_slot(day, slot)
    if window_start is None:
        raise SlotValidationError(
            f"Slot '{slot}' is not a valid drop-off/pick-up window on {day.isoformat()}"
        )
    return window_start


def require_window_over_range(start: date, end: date, slot: Optional[str]) -> str:
    """
    Canonical slot for an override spanning start..end.

    A windowed slot must be a window on every date of the range.
    """
    slot = normalize_slot(slot)
    if slot == ALL_DAY:
        return slot
    canonical = None
    day = start
    while day <= end:
        canonical = require_valid_slot(day, slot)
        day += timedelta(days=1)
    return canonical


class CapacityLedger:
    """
    Capacity bookkeeping over the SQLAlchemy session.

    Boarding is tracked per kennel size (boarding:small, boarding:large);
    the "boarding" figure shown to staff is summed at read time in
    overview() and never stored.
    """

    def __init__(self, db: Session, fallbacks: Optional[Dict[str, int]] = None):
        self.db = db
        self.fallbacks = fallbacks or settings.capacity_fallbacks

    # ------------------------------------------------------------------
    # Key helpers
    # ------------------------------------------------------------------
    def _key(self, service, day: DateLike, slot: Optional[str]):
        return normalize_service(service), require_date(day), normalize_slot(slot)

    def _record_filter(self, service: ServiceKey, day: date, slot: str):
        return and_(
            CapacityRecord.service == service.value,
            CapacityRecord.date == day,
            CapacityRecord.slot == slot,
        )

    def _ensure_record(self, service: ServiceKey, day: date, slot: str, capacity: int) -> None:
        insert_if_absent(
            self.db,
            CapacityRecord,
            {"service": service.value, "date": day, "slot": slot, "capacity": capacity, "consumed": 0},
            ["service", "date", "slot"],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _find_override(self, service: ServiceKey, day: date, slot: str) -> Optional[CapacityOverride]:
        # Latest date_start wins when ranges overlap
        return self.db.query(CapacityOverride).filter(
            CapacityOverride.service == service.value,
            CapacityOverride.slot == slot,
            CapacityOverride.date_start <= day,
            CapacityOverride.date_end >= day,
        ).order_by(CapacityOverride.date_start.desc()).first()

    def _default_capacity(self, service: ServiceKey) -> int:
        row = self.db.get(CapacityDefault, service.value)
        if row is not None:
            return row.capacity
        return self.fallbacks.get(service.value, 0)

    def _resolve_capacity(self, service: ServiceKey, day: date, slot: str) -> int:
        def read():
            override = self._find_override(service, day, slot)
            if override is not None:
                return override.capacity
            return self._default_capacity(service)

        return with_read_retries(read, label=f"capacity {service.value} {day}")

    def _read_consumed(self, service: ServiceKey, day: date, slot: str) -> int:
        def read():
            value = self.db.query(CapacityRecord.consumed).filter(
                self._record_filter(service, day, slot)
            ).scalar()
            return value or 0

        return with_read_retries(read, label=f"consumed {service.value} {day}")

    def get_capacity(self, service, day: DateLike, slot: Optional[str] = None) -> int:
        return self._resolve_capacity(*self._key(service, day, slot))

    def get_consumed(self, service, day: DateLike, slot: Optional[str] = None) -> int:
        return self._read_consumed(*self._key(service, day, slot))

    def get_available(self, service, day: DateLike, slot: Optional[str] = None) -> int:
        return self.snapshot(service, day, slot).available

    def snapshot(self, service, day: DateLike, slot: Optional[str] = None) -> CapacitySnapshot:
        service, day, slot = self._key(service, day, slot)
        return CapacitySnapshot(
            service=service,
            date=day,
            slot=slot,
            capacity=self._resolve_capacity(service, day, slot),
            consumed=self._read_consumed(service, day, slot),
        )

    # ------------------------------------------------------------------
    # Mutations of `consumed`
    # ------------------------------------------------------------------
    def reserve(
        self,
        service,
        day: DateLike,
        slot: Optional[str] = None,
        count: int = 1,
        commit: bool = True
    ) -> ReserveOutcome:
        """
        Take `count` units if consumed + count <= capacity, else FULL.

        FULL leaves the counter untouched.
        """
        if count < 1:
            raise ValidationError("count must be at least 1", field="count")
        service, day, slot = self._key(service, day, slot)

        try:
            capacity = self._resolve_capacity(service, day, slot)
            self._ensure_record(service, day, slot, capacity)
            taken = ConditionalCounter.increment_if_within(
                self.db,
                CapacityRecord,
                self._record_filter(service, day, slot),
                "consumed",
                count,
                capacity,
                extra_values={"capacity": capacity, "updated_at": utcnow()},
            )
            if commit:
                self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if not taken:
            logger.info(f"FULL: {service.value} {day} {slot} (capacity {capacity})")
            return ReserveOutcome.FULL

        logger.debug(f"Reserved {count} of {service.value} {day} {slot}")
        return ReserveOutcome.OK

    def release(
        self,
        service,
        day: DateLike,
        slot: Optional[str] = None,
        count: int = 1,
        commit: bool = True
    ) -> None:
        """Give back `count` units; floored at zero against double release"""
        if count < 1:
            raise ValidationError("count must be at least 1", field="count")
        service, day, slot = self._key(service, day, slot)

        try:
            touched = ConditionalCounter.decrement_floor_zero(
                self.db,
                CapacityRecord,
                self._record_filter(service, day, slot),
                "consumed",
                count,
                extra_values={"updated_at": utcnow()},
            )
            if commit:
                self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if not touched:
            logger.warning(f"Release on missing capacity record {service.value} {day} {slot}")

    # ------------------------------------------------------------------
    # Admin: defaults and overrides
    # ------------------------------------------------------------------
    def get_defaults(self) -> Dict[str, int]:
        return {service.value: self._default_capacity(service) for service in ServiceKey}

    def set_defaults(self, capacities: Dict) -> Dict[str, int]:
        """Upsert default capacity per service"""
        normalized = {}
        for service, capacity in capacities.items():
            key = normalize_service(service)
            if capacity is None or int(capacity) < 0:
                raise ValidationError(f"Capacity for {key.value} must be a non-negative integer", field=key.value)
            normalized[key] = int(capacity)

        for key, capacity in normalized.items():
            row = self.db.get(CapacityDefault, key.value)
            if row is None:
                self.db.add(CapacityDefault(service=key.value, capacity=capacity))
            else:
                row.capacity = capacity
                row.updated_at = utcnow()
        self.db.commit()

        logger.info(f"Capacity defaults updated: { {k.value: v for k, v in normalized.items()} }")
        return self.get_defaults()

    def list_overrides(self) -> List[CapacityOverride]:
        return self.db.query(CapacityOverride).order_by(
            CapacityOverride.date_start, CapacityOverride.service
        ).all()

    def set_override(
        self,
        service,
        date_start: DateLike,
        date_end: Optional[DateLike],
        slot: Optional[str],
        capacity: int
    ) -> CapacityOverride:
        """Create or update the override for (service, date_start, date_end, slot)"""
        service = normalize_service(service)
        start = require_date(date_start, "date_start")
        end = require_date(date_end, "date_end") if date_end else start
        if end < start:
            raise ValidationError("date_end must not be before date_start", field="date_end")
        if capacity is None or int(capacity) < 0:
            raise ValidationError("capacity must be a non-negative integer", field="capacity")
        slot = require_window_over_range(start, end, slot)

        override = self.db.query(CapacityOverride).filter(
            CapacityOverride.service == service.value,
            CapacityOverride.date_start == start,
            CapacityOverride.date_end == end,
            CapacityOverride.slot == slot,
        ).first()

        if override is None:
            override = CapacityOverride(
                service=service.value,
                date_start=start,
                date_end=end,
                slot=slot,
                capacity=int(capacity),
            )
            self.db.add(override)
        else:
            override.capacity = int(capacity)
            override.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(override)

        logger.info(f"Capacity override {service.value} {start}..{end} {slot} = {capacity}")
        return override

    def clear_override(
        self,
        service,
        date_start: DateLike,
        date_end: Optional[DateLike] = None,
        slot: Optional[str] = None
    ) -> int:
        """Delete the matching override; the range reverts to the default at once"""
        service = normalize_service(service)
        start = require_date(date_start, "date_start")
        end = require_date(date_end, "date_end") if date_end else start
        if end < start:
            raise ValidationError("date_end must not be before date_start", field="date_end")
        slot = require_window_over_range(start, end, slot)

        count = self.db.query(CapacityOverride).filter(
            CapacityOverride.service == service.value,
            CapacityOverride.date_start == start,
            CapacityOverride.date_end == end,
            CapacityOverride.slot == slot,
        ).delete(synchronize_session=False)
        self.db.commit()

        logger.info(f"Cleared {count} capacity override(s) {service.value} {start}..{end} {slot}")
        return count

    def reset_overrides(self, service=None) -> int:
        """Delete all overrides, or all overrides of one service"""
        query = self.db.query(CapacityOverride)
        if service is not None:
            query = query.filter(CapacityOverride.service == normalize_service(service).value)
        count = query.delete(synchronize_session=False)
        self.db.commit()

        logger.info(f"Reset {count} capacity override(s)")
        return count

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def _hold_counts(self, day: date, slot: str) -> Dict[str, Dict[str, int]]:
        rows = self.db.query(
            ReservationHold.service, ReservationHold.status, func.count(ReservationHold.id)
        ).filter(
            ReservationHold.date == day,
            ReservationHold.slot == slot,
            ReservationHold.status.in_(CONSUMING_STATUSES),
        ).group_by(ReservationHold.service, ReservationHold.status).all()

        counts: Dict[str, Dict[str, int]] = {}
        for service, status, count in rows:
            bucket = counts.setdefault(service, {"booked": 0, "reserved": 0})
            if status == HoldStatus.CONFIRMED.value:
                bucket["booked"] += count
            else:
                bucket["reserved"] += count
        return counts

    def overview(self, day: DateLike, slot: Optional[str] = None) -> Dict:
        """
        Per-service capacity for a date plus the derived boarding aggregate.

        resources[service] = {capacity, consumed, available, booked, reserved}
        aggregate.boarding = boarding:small + boarding:large
        """
        day = require_date(day)
        slot = require_valid_slot(day, slot)
        hold_counts = self._hold_counts(day, slot)

        resources = {}
        for service in ServiceKey:
            capacity = self._resolve_capacity(service, day, slot)
            consumed = self._read_consumed(service, day, slot)
            counts = hold_counts.get(service.value, {"booked": 0, "reserved": 0})
            resources[service.value] = {
                "capacity": capacity,
                "consumed": consumed,
                "available": max(0, capacity - consumed),
                "booked": counts["booked"],
                "reserved": counts["reserved"],
            }

        boarding = {
            field: sum(resources[key.value][field] for key in BOARDING_KEYS)
            for field in ("capacity", "consumed", "available", "booked", "reserved")
        }

        total_capacity = (
            resources[ServiceKey.DAYCARE.value]["capacity"]
            + boarding["capacity"]
            + resources[ServiceKey.TRIAL.value]["capacity"]
        )
        total_occupied = sum(r["consumed"] for r in resources.values())
        utilisation = round(total_occupied / total_capacity * 100) if total_capacity > 0 else 0

        return {
            "date": day.isoformat(),
            "slot": None if slot == ALL_DAY else slot,
            "resources": resources,
            "aggregate": {"boarding": boarding},
            "totals": {
                "capacity": total_capacity,
                "occupied": total_occupied,
                "available": max(0, total_capacity - total_occupied),
                "utilisation_pct": utilisation,
            },
        }

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def reconcile(self, day: DateLike) -> List[Dict]:
        """
        Recount `consumed` from active + confirmed holds for one date.

        Backstop for a process dying between reserve() and persisting the
        hold. Run it while the date sees no booking traffic: it overwrites
        the counter with the recount.
        """
        day = require_date(day)

        held = dict(
            ((service, slot), count)
            for service, slot, count in self.db.query(
                ReservationHold.service, ReservationHold.slot, func.count(ReservationHold.id)
            ).filter(
                ReservationHold.date == day,
                ReservationHold.status.in_(CONSUMING_STATUSES),
            ).group_by(ReservationHold.service, ReservationHold.slot).all()
        )

        records = {
            (r.service, r.slot): r
            for r in self.db.query(CapacityRecord).filter(CapacityRecord.date == day).all()
        }

        corrections = []
        for (service, slot) in sorted(set(held) | set(records)):
            expected = held.get((service, slot), 0)
            record = records.get((service, slot))
            actual = record.consumed if record else 0
            if expected == actual:
                continue

            if record is None:
                capacity = self._resolve_capacity(ServiceKey(service), day, slot)
                self.db.add(CapacityRecord(
                    service=service, date=day, slot=slot, capacity=capacity, consumed=expected
                ))
            else:
                record.consumed = expected
                record.updated_at = utcnow()

            corrections.append({"service": service, "slot": slot, "was": actual, "now": expected})
            logger.warning(f"Reconciled {service} {day} {slot}: consumed {actual} -> {expected}")

        self.db.commit()
        return corrections
