"""
Reservation Hold Model

A hold is a time-bounded claim on one unit of capacity, pending conversion
into a confirmed booking. The idempotency key is unique at the database
level so two identical create requests cannot both insert.
"""

import enum
import uuid
from sqlalchemy import Column, String, Date, DateTime, Index

from ..database import Base
from .capacity import ALL_DAY
from ..utils.clock import utcnow


class HoldStatus(str, enum.Enum):
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    EXPIRED = "expired"
    CANCELLED = "cancelled"  # confirmed booking cancelled afterwards


# Holds that still count against capacity
CONSUMING_STATUSES = (HoldStatus.ACTIVE.value, HoldStatus.CONFIRMED.value)


class ReservationHold(Base):
    __tablename__ = "reservation_holds"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    idempotency_key = Column(String(64), nullable=False)

    service = Column(String(32), nullable=False)
    date = Column(Date, nullable=False)
    slot = Column(String(32), nullable=False, default=ALL_DAY)

    user_email = Column(String(320), nullable=False)
    dog_id = Column(String(36), nullable=True)

    status = Column(String(16), nullable=False, default=HoldStatus.ACTIVE.value)
    payment_reference = Column(String(120), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_reservation_holds_idempotency", "idempotency_key", unique=True),
        Index("ix_reservation_holds_service_date", "service", "date"),
        Index("ix_reservation_holds_status_expires", "status", "expires_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == HoldStatus.ACTIVE.value

    def __repr__(self):
        return f"<ReservationHold {self.id} {self.service} {self.date} {self.slot} {self.status}>"
