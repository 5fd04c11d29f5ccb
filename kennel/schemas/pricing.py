"""
Pricing Schemas

Pydantic models for price quotes.
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from ..services.pricing_engine import BoardingInput


class BoardingStay(BaseModel):
    """Boarding stay details; timestamps are ISO-8601"""
    dog_count: int = Field(..., description="Number of dogs sharing the kennel")
    checkin: str
    checkout: str
    checkout_time_label: Optional[str] = Field(None, description="Pick-up slot label, e.g. '16:00 - 18:00'")
    pickup_window: Optional[str] = Field(None, description="AM or PM (hours_v1 only)")

    def to_input(self) -> BoardingInput:
        return BoardingInput(
            dog_count=self.dog_count,
            checkin=self.checkin,
            checkout=self.checkout,
            checkout_time_label=self.checkout_time_label,
            pickup_window=self.pickup_window,
        )


class QuoteRequest(BaseModel):
    service: str
    model: str = Field(..., description="hours_v1 or calendar_v2")
    boarding: Optional[BoardingStay] = None
    currency: Optional[str] = Field(None, max_length=3)


class QuoteResponse(BaseModel):
    service: str
    model: str
    total: Decimal
    nights: Optional[int] = None
    per_night: Optional[Decimal] = None
    pm_surcharge: Optional[Decimal] = None
    currency: str
