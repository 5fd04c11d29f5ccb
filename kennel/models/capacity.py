"""
Capacity Models

Three layers feed the capacity ledger:
- CapacityDefault: one row per service, admin managed
- CapacityOverride: date-range scoped value that wins over the default
- CapacityRecord: per (service, date, slot) consumption counter
"""

import enum
import uuid
from sqlalchemy import Column, String, Date, DateTime, Integer, Index, UniqueConstraint, CheckConstraint

from ..database import Base
from ..errors import UnknownServiceError
from ..utils.clock import utcnow

ALL_DAY = "ALL_DAY"


class ServiceKey(str, enum.Enum):
    DAYCARE = "daycare"
    BOARDING_SMALL = "boarding:small"
    BOARDING_LARGE = "boarding:large"
    TRIAL = "trial"


BOARDING_KEYS = (ServiceKey.BOARDING_SMALL, ServiceKey.BOARDING_LARGE)

# Labels used by the booking UI and older rows
SERVICE_LABELS = {
    "daycare": ServiceKey.DAYCARE,
    "boarding small": ServiceKey.BOARDING_SMALL,
    "boarding_small": ServiceKey.BOARDING_SMALL,
    "boardingsmall": ServiceKey.BOARDING_SMALL,
    "boarding:small": ServiceKey.BOARDING_SMALL,
    "boarding large": ServiceKey.BOARDING_LARGE,
    "boarding_large": ServiceKey.BOARDING_LARGE,
    "boardinglarge": ServiceKey.BOARDING_LARGE,
    "boarding:large": ServiceKey.BOARDING_LARGE,
    "trial": ServiceKey.TRIAL,
    "trial day": ServiceKey.TRIAL,
    "trial:day": ServiceKey.TRIAL,
    "trial_day": ServiceKey.TRIAL,
}


def normalize_service(value) -> ServiceKey:
    """Map a service key or display label onto a ServiceKey"""
    if isinstance(value, ServiceKey):
        return value
    key = SERVICE_LABELS.get(str(value or "").strip().lower())
    if key is None:
        raise UnknownServiceError(
            f"Unknown service '{value}'. Expected one of: "
            + ", ".join(s.value for s in ServiceKey)
        )
    return key


def normalize_slot(slot) -> str:
    """Empty or missing slots collapse to the ALL_DAY sentinel"""
    if slot is None:
        return ALL_DAY
    slot = str(slot).strip()
    return slot or ALL_DAY


class CapacityDefault(Base):
    __tablename__ = "capacity_defaults"

    service = Column(String(32), primary_key=True)
    capacity = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_capacity_defaults_non_negative"),
    )

    def __repr__(self):
        return f"<CapacityDefault {self.service}={self.capacity}>"


class CapacityOverride(Base):
    __tablename__ = "capacity_overrides"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    service = Column(String(32), nullable=False)
    date_start = Column(Date, nullable=False)
    date_end = Column(Date, nullable=False)
    slot = Column(String(32), nullable=False, default=ALL_DAY)
    capacity = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("service", "date_start", "date_end", "slot", name="uq_capacity_override_range"),
        CheckConstraint("capacity >= 0", name="ck_capacity_overrides_non_negative"),
        Index("ix_capacity_overrides_dates", "date_start", "date_end"),
        Index("ix_capacity_overrides_service", "service"),
    )

    def __repr__(self):
        return f"<CapacityOverride {self.service} {self.date_start}..{self.date_end} {self.slot}={self.capacity}>"


class CapacityRecord(Base):
    """
    Consumption counter for one (service, date, slot).

    `consumed` counts active + confirmed holds and is only written by
    the ledger's reserve/release/reconcile.
    """
    __tablename__ = "capacity_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    service = Column(String(32), nullable=False)
    date = Column(Date, nullable=False)
    slot = Column(String(32), nullable=False, default=ALL_DAY)

    # Effective capacity at the last reserve/availability read
    capacity = Column(Integer, nullable=False, default=0)
    consumed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("service", "date", "slot", name="uq_capacity_record_key"),
        CheckConstraint("consumed >= 0", name="ck_capacity_records_consumed_non_negative"),
        Index("ix_capacity_records_date", "date"),
    )

    @property
    def available(self) -> int:
        return max(0, (self.capacity or 0) - (self.consumed or 0))

    def __repr__(self):
        return f"<CapacityRecord {self.service} {self.date} {self.slot} {self.consumed}/{self.capacity}>"
