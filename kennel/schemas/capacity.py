"""
Capacity Schemas

Pydantic models for availability, defaults, overrides and the overview.
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class AvailabilityResponse(BaseModel):
    service: str
    date: str
    slot: Optional[str] = None
    capacity: int
    consumed: int
    remaining: int


class CapacityDefaultsUpdate(BaseModel):
    """Default capacity per service key; omitted services are unchanged"""
    capacities: Dict[str, int] = Field(..., min_length=1)


class CapacityDefaultsResponse(BaseModel):
    defaults: Dict[str, int]


class CapacityOverrideCreate(BaseModel):
    service: str
    date_start: str = Field(..., description="YYYY-MM-DD")
    date_end: Optional[str] = Field(None, description="YYYY-MM-DD, defaults to date_start")
    slot: Optional[str] = None
    capacity: int = Field(..., ge=0)


class CapacityOverrideResponse(BaseModel):
    id: str
    service: str
    date_start: str
    date_end: str
    slot: Optional[str] = None
    capacity: int
    updated_at: Optional[datetime] = None


class CapacityConfigResponse(BaseModel):
    defaults: Dict[str, int]
    overrides: List[CapacityOverrideResponse]


class CapacityResetRequest(BaseModel):
    service: Optional[str] = None


class ResourceCapacity(BaseModel):
    capacity: int
    consumed: int
    available: int
    booked: int
    reserved: int


class CapacityTotals(BaseModel):
    capacity: int
    occupied: int
    available: int
    utilisation_pct: int


class CapacityOverviewResponse(BaseModel):
    date: str
    slot: Optional[str] = None
    resources: Dict[str, ResourceCapacity]
    aggregate: Dict[str, ResourceCapacity]
    totals: CapacityTotals


class ReconcileCorrection(BaseModel):
    service: str
    slot: str
    was: int
    now: int


class ReconcileResponse(BaseModel):
    date: str
    corrections: List[ReconcileCorrection]
