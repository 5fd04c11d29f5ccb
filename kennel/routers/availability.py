"""
Availability API Router

Remaining capacity for one (service, date, slot).
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.capacity import AvailabilityResponse
from ..services.capacity_ledger import CapacityLedger, require_date, require_valid_slot
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/availability", tags=["Availability"])


@router.get("", response_model=AvailabilityResponse)
@router.get("/", response_model=AvailabilityResponse)
@limiter.limit(get_rate_limit("availability"))
async def get_availability(
    request: Request,
    service: str = Query(..., description="daycare, boarding:small, boarding:large or trial"),
    date: str = Query(..., description="YYYY-MM-DD"),
    slot: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Capacity, consumed and remaining units for a service on a date"""
    day = require_date(date)
    slot = require_valid_slot(day, slot)
    return CapacityLedger(db).snapshot(service, day, slot).to_dict()
