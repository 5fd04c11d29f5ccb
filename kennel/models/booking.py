import enum
import uuid
from sqlalchemy import Column, String, Date, DateTime, Numeric, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from .capacity import ALL_DAY
from ..utils.clock import utcnow


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base):
    """
    Paid booking created from a confirmed hold.

    The pricing snapshot is frozen at confirmation so later changes to the
    pricing model never alter an already priced booking.
    """
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    hold_id = Column(String(36), ForeignKey("reservation_holds.id", ondelete="RESTRICT"), nullable=False)

    service = Column(String(32), nullable=False)
    date = Column(Date, nullable=False)
    slot = Column(String(32), nullable=False, default=ALL_DAY)
    user_email = Column(String(320), nullable=False)
    dog_id = Column(String(36), nullable=True)

    status = Column(String(16), nullable=False, default=BookingStatus.CONFIRMED.value)

    # Pricing audit record
    total = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    pricing_model = Column(String(16), nullable=False)
    pricing_snapshot = Column(JSON, nullable=False)

    payment_reference = Column(String(120), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    hold = relationship("ReservationHold")

    __table_args__ = (
        Index("ix_bookings_hold", "hold_id", unique=True),
        Index("ix_bookings_service_date", "service", "date"),
        Index("ix_bookings_user_email", "user_email"),
    )

    def __repr__(self):
        return f"<Booking {self.id} {self.service} {self.date} {self.status} {self.total} {self.currency}>"
