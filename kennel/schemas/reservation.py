"""
Reservation Schemas

Pydantic models for reservation hold requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from .pricing import BoardingStay


class ReservationCreate(BaseModel):
    """Create (or replay) a hold; the idempotency key makes retries safe"""
    idempotency_key: str = Field(..., min_length=1, max_length=64)
    service: str = Field(..., description="daycare, boarding:small, boarding:large or trial")
    date: str = Field(..., description="YYYY-MM-DD")
    slot: Optional[str] = Field(None, description="Window start, range or label; empty for all day")
    user_email: str = Field(..., min_length=3, max_length=320)
    dog_id: Optional[str] = Field(None, max_length=36)


class ReservationResponse(BaseModel):
    reservation_id: str
    status: str
    expires_at: datetime
    service: str
    date: str
    slot: Optional[str] = None


class ReservationDetail(ReservationResponse):
    user_email: str
    dog_id: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime


class ReleaseResponse(BaseModel):
    """Release is always acknowledged; `released` says whether this call freed a unit"""
    reservation_id: str
    released: bool


class PaymentResultRequest(BaseModel):
    """Verdict from the payment gateway for a hold"""
    success: bool
    payment_reference: Optional[str] = Field(None, max_length=120)
    pricing_model: str = Field(..., description="hours_v1 or calendar_v2, frozen onto the booking")
    boarding: Optional[BoardingStay] = None


class BookingResponse(BaseModel):
    id: str
    hold_id: str
    service: str
    date: str
    slot: Optional[str] = None
    status: str
    total: Decimal
    currency: str
    pricing_model: str
    pricing_snapshot: dict
    payment_reference: Optional[str] = None


class PaymentResultResponse(BaseModel):
    reservation_id: str
    status: str
    booking: Optional[BookingResponse] = None


class CancelResponse(BaseModel):
    reservation_id: str
    cancelled: bool
