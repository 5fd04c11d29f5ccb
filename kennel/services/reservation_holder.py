"""
Reservation Holder Service

Idempotent, TTL-bounded holds on one unit of capacity.

Lifecycle:
    active -> confirmed   (payment succeeded, no capacity change)
    active -> released    (client gave up, capacity returned)
    active -> expired     (sweep after expires_at, capacity returned)
    confirmed -> cancelled (admin cancellation, capacity returned)

Every transition is a compare-and-set on `status`; capacity is returned
only by the caller that won the transition, in the same transaction.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import PersistenceError, ValidationError
from ..models.booking import Booking, BookingStatus
from ..models.capacity import normalize_service
from ..models.reservation_hold import HoldStatus, ReservationHold
from ..utils.clock import utcnow
from ..utils.db_helpers import (
    get_pending_with_skip_locked,
    insert_if_absent,
    transition_status,
    with_read_retries,
)
from ..utils.logging_config import get_logger
from ..utils.metrics import record_hold_outcome, record_hold_transition
from .capacity_ledger import CapacityLedger, ReserveOutcome, require_date, require_valid_slot

logger = get_logger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 64
SWEEP_BATCH_SIZE = 200


class HoldOutcome(str, enum.Enum):
    CREATED = "created"
    REPLAYED = "replayed"
    FULL = "full"


@dataclass
class HoldResult:
    outcome: HoldOutcome
    hold: Optional[ReservationHold] = None

    @property
    def created(self) -> bool:
        return self.outcome == HoldOutcome.CREATED

    @property
    def is_full(self) -> bool:
        return self.outcome == HoldOutcome.FULL


class ReservationHolder:
    """
    Hold lifecycle over a CapacityLedger sharing the same session.

    Usage:
        holder = ReservationHolder(db)
        result = holder.create_hold(key, "daycare", "2025-03-10", None, "a@b.ie")
        if result.is_full:
            ...
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[CapacityLedger] = None,
        ttl_minutes: Optional[int] = None
    ):
        self.db = db
        self.ledger = ledger or CapacityLedger(db)
        self.ttl = timedelta(minutes=ttl_minutes or settings.reservation_ttl_min)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_hold(self, hold_id: str) -> Optional[ReservationHold]:
        return with_read_retries(
            lambda: self.db.get(ReservationHold, hold_id),
            label=f"hold {hold_id}",
        )

    def get_hold_by_key(self, idempotency_key: str) -> Optional[ReservationHold]:
        return with_read_retries(
            lambda: self.db.query(ReservationHold).filter(
                ReservationHold.idempotency_key == idempotency_key
            ).first(),
            label="hold by idempotency key",
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create_hold(
        self,
        idempotency_key: str,
        service,
        day,
        slot: Optional[str],
        user_email: str,
        dog_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> HoldResult:
        """
        Reserve one unit and record an active hold, at most once per key.

        A key seen before returns its hold unchanged whatever its status.
        Validation happens before any capacity is touched.

        Raises:
            ValidationError: bad key, email, service, date or slot
            PersistenceError: hold could not be stored (capacity given back)
        """
        key = (idempotency_key or "").strip()
        if not key or len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValidationError(
                f"idempotency_key must be 1-{MAX_IDEMPOTENCY_KEY_LENGTH} characters",
                field="idempotency_key",
            )
        if not user_email or "@" not in user_email:
            raise ValidationError("A valid user_email is required", field="user_email")

        service = normalize_service(service)
        day = require_date(day)
        slot = require_valid_slot(day, slot)

        existing = self.get_hold_by_key(key)
        if existing is not None:
            record_hold_outcome(service.value, HoldOutcome.REPLAYED.value)
            return HoldResult(HoldOutcome.REPLAYED, existing)

        if self.ledger.reserve(service, day, slot) == ReserveOutcome.FULL:
            record_hold_outcome(service.value, HoldOutcome.FULL.value)
            return HoldResult(HoldOutcome.FULL)

        now = now or utcnow()
        hold_id = str(uuid.uuid4())
        values = {
            "id": hold_id,
            "idempotency_key": key,
            "service": service.value,
            "date": day,
            "slot": slot,
            "user_email": user_email.strip().lower(),
            "dog_id": dog_id,
            "status": HoldStatus.ACTIVE.value,
            "created_at": now,
            "expires_at": now + self.ttl,
            "updated_at": now,
        }

        try:
            inserted = insert_if_absent(self.db, ReservationHold, values, ["idempotency_key"])
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist hold for {service.value} {day} {slot}: {e}", exc_info=True)
            self._compensate(service, day, slot)
            raise PersistenceError("Reservation could not be stored, please retry") from e

        if not inserted:
            # A concurrent twin request stored its hold first
            self._compensate(service, day, slot)
            winner = self.get_hold_by_key(key)
            if winner is None:
                raise PersistenceError("Reservation could not be stored, please retry")
            record_hold_outcome(service.value, HoldOutcome.REPLAYED.value)
            return HoldResult(HoldOutcome.REPLAYED, winner)

        hold = self.get_hold(hold_id)
        record_hold_outcome(service.value, HoldOutcome.CREATED.value)
        logger.hold_created(hold_id, service.value, day.isoformat(), slot, hold.expires_at.isoformat())
        return HoldResult(HoldOutcome.CREATED, hold)

    def _compensate(self, service, day, slot) -> None:
        try:
            self.ledger.release(service, day, slot)
        except SQLAlchemyError as e:
            # Counter is now one too high until reconcile() runs for the date
            logger.log_with_context(
                logging.ERROR,
                f"Compensating release failed for {service.value} {day} {slot}: {e}",
                entity_type="capacity_record",
                entity_id=f"{service.value}|{day}|{slot}",
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def confirm_hold(
        self,
        hold_id: str,
        payment_reference: Optional[str] = None,
        commit: bool = True
    ) -> bool:
        """active -> confirmed. Capacity stays consumed. False when not active."""
        extra = {"payment_reference": payment_reference} if payment_reference else None
        try:
            won = transition_status(
                self.db, ReservationHold, hold_id,
                HoldStatus.ACTIVE.value, HoldStatus.CONFIRMED.value,
                extra_values=extra,
            )
            if commit:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to confirm hold {hold_id}: {e}", exc_info=True)
            raise PersistenceError("Reservation could not be confirmed, please retry") from e

        if won:
            record_hold_transition(HoldStatus.CONFIRMED.value)
            logger.hold_status_changed(hold_id, HoldStatus.ACTIVE.value, HoldStatus.CONFIRMED.value)
        return won

    def release_hold(self, hold_id: str) -> bool:
        """
        active -> released and give the unit back.

        Missing or non-active holds are a no-op. Never raises; store
        failures are logged and reported as False.
        """
        try:
            hold = self.get_hold(hold_id)
            if hold is None or not hold.is_active:
                return False
            service, day, slot = hold.service, hold.date, hold.slot

            won = transition_status(
                self.db, ReservationHold, hold_id,
                HoldStatus.ACTIVE.value, HoldStatus.RELEASED.value,
            )
            if won:
                self.ledger.release(service, day, slot, commit=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to release hold {hold_id}: {e}", exc_info=True)
            return False

        if won:
            record_hold_transition(HoldStatus.RELEASED.value)
            logger.hold_status_changed(hold_id, HoldStatus.ACTIVE.value, HoldStatus.RELEASED.value)
        return won

    def sweep_expired(self, now: Optional[datetime] = None, batch_size: int = SWEEP_BATCH_SIZE) -> int:
        """
        Move active holds past expires_at to expired and give their units back.

        Overlapping runs are safe: each hold is released only by the run that
        wins its transition. Per-hold failures are logged and skipped.

        Returns:
            Number of holds reclaimed by this call
        """
        now = now or utcnow()
        candidates = get_pending_with_skip_locked(
            self.db,
            ReservationHold,
            and_(
                ReservationHold.status == HoldStatus.ACTIVE.value,
                ReservationHold.expires_at < now,
            ),
            order_by=ReservationHold.expires_at,
            limit=batch_size,
        )
        pending = [(h.id, h.service, h.date, h.slot) for h in candidates]

        reclaimed = 0
        for hold_id, service, day, slot in pending:
            try:
                won = transition_status(
                    self.db, ReservationHold, hold_id,
                    HoldStatus.ACTIVE.value, HoldStatus.EXPIRED.value,
                )
                if won:
                    self.ledger.release(service, day, slot, commit=False)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Sweep failed for hold {hold_id}: {e}", exc_info=True)
                continue

            if won:
                reclaimed += 1
                logger.hold_status_changed(
                    hold_id, HoldStatus.ACTIVE.value, HoldStatus.EXPIRED.value,
                    service=service, date=day.isoformat(), slot=slot,
                )

        # Close the read transaction (and any row locks) when nothing was due
        self.db.commit()

        record_hold_transition(HoldStatus.EXPIRED.value, reclaimed)
        if reclaimed:
            logger.info(f"Sweep reclaimed {reclaimed} expired hold(s)")
        return reclaimed

    def cancel_confirmed(self, hold_id: str) -> bool:
        """
        confirmed -> cancelled, give the unit back and cancel the booking.

        False when the hold is missing or not confirmed.
        """
        now = utcnow()
        try:
            hold = self.get_hold(hold_id)
            if hold is None or hold.status != HoldStatus.CONFIRMED.value:
                return False
            service, day, slot = hold.service, hold.date, hold.slot

            won = transition_status(
                self.db, ReservationHold, hold_id,
                HoldStatus.CONFIRMED.value, HoldStatus.CANCELLED.value,
            )
            if won:
                self.ledger.release(service, day, slot, commit=False)
                self.db.query(Booking).filter(Booking.hold_id == hold_id).update(
                    {
                        Booking.status: BookingStatus.CANCELLED.value,
                        Booking.cancelled_at: now,
                        Booking.updated_at: now,
                    },
                    synchronize_session=False,
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to cancel hold {hold_id}: {e}", exc_info=True)
            raise PersistenceError("Booking could not be cancelled, please retry") from e

        if won:
            record_hold_transition(HoldStatus.CANCELLED.value)
            logger.hold_status_changed(hold_id, HoldStatus.CONFIRMED.value, HoldStatus.CANCELLED.value)
        return won
