"""
Operating Hours API Router
"""

from fastapi import APIRouter, Query

from ..schemas.hours import WindowsResponse, SlotsResponse, SlotValidationResponse
from ..services import hours_policy
from ..services.capacity_ledger import require_date

router = APIRouter(prefix="/api/hours", tags=["Hours"])


@router.get("/windows", response_model=WindowsResponse)
async def get_windows(date: str = Query(..., description="YYYY-MM-DD")):
    day = require_date(date)
    return {
        "date": day.isoformat(),
        "day_name": hours_policy.day_name(day),
        "closed": hours_policy.is_closed(day),
        "windows": [
            {"start": w.start, "end": w.end, "label": w.label}
            for w in hours_policy.windows_for_date(day)
        ],
    }


@router.get("/slots", response_model=SlotsResponse)
async def get_slots(
    date: str = Query(..., description="YYYY-MM-DD"),
    step: int = Query(30, ge=1, le=120, description="Minutes between slot starts")
):
    day = require_date(date)
    return {
        "date": day.isoformat(),
        "step_minutes": step,
        "slots": hours_policy.enumerate_slots(day, step),
    }


@router.get("/validate", response_model=SlotValidationResponse)
async def validate_slot(
    date: str = Query(..., description="YYYY-MM-DD"),
    slot: str = Query(...)
):
    day = require_date(date)
    return {
        "date": day.isoformat(),
        "slot": slot,
        "valid": hours_policy.is_slot_valid(day, slot),
    }
