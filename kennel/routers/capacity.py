"""
Capacity API Routers

Public:
- GET /api/capacity/overview   per-service capacity for a date (no-store)
- PUT /api/capacity/defaults   default capacity per service (admin)

Admin:
- GET    /api/admin/capacity            defaults + overrides
- POST   /api/admin/capacity            create/update a date-range override
- DELETE /api/admin/capacity            clear one override
- POST   /api/admin/capacity/reset      clear all overrides (optionally one service)
- POST   /api/admin/capacity/reconcile  recount consumed units from holds
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.capacity import ALL_DAY, CapacityOverride
from ..schemas.capacity import (
    CapacityDefaultsUpdate,
    CapacityDefaultsResponse,
    CapacityOverrideCreate,
    CapacityOverrideResponse,
    CapacityConfigResponse,
    CapacityResetRequest,
    CapacityOverviewResponse,
    ReconcileResponse,
)
from ..services.capacity_ledger import CapacityLedger, require_date
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import require_admin

router = APIRouter(prefix="/api/capacity", tags=["Capacity"])
admin_router = APIRouter(
    prefix="/api/admin/capacity",
    tags=["Capacity Admin"],
    dependencies=[Depends(require_admin)]
)


def _override_response(override: CapacityOverride) -> dict:
    return {
        "id": override.id,
        "service": override.service,
        "date_start": override.date_start.isoformat(),
        "date_end": override.date_end.isoformat(),
        "slot": None if override.slot == ALL_DAY else override.slot,
        "capacity": override.capacity,
        "updated_at": override.updated_at,
    }


# ==================
# Public
# ==================

@router.get("/overview", response_model=CapacityOverviewResponse)
async def capacity_overview(
    response: Response,
    date: str = Query(..., description="YYYY-MM-DD"),
    slot: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Capacity, consumption and holds per service plus the boarding aggregate"""
    response.headers["Cache-Control"] = "no-store"
    return CapacityLedger(db).overview(date, slot)


@router.put("/defaults", response_model=CapacityDefaultsResponse, dependencies=[Depends(require_admin)])
async def update_capacity_defaults(
    payload: CapacityDefaultsUpdate,
    db: Session = Depends(get_db)
):
    return {"defaults": CapacityLedger(db).set_defaults(payload.capacities)}


# ==================
# Admin
# ==================

@admin_router.get("", response_model=CapacityConfigResponse)
@admin_router.get("/", response_model=CapacityConfigResponse)
@limiter.limit(get_rate_limit("admin"))
async def list_capacity_config(request: Request, db: Session = Depends(get_db)):
    ledger = CapacityLedger(db)
    return {
        "defaults": ledger.get_defaults(),
        "overrides": [_override_response(o) for o in ledger.list_overrides()],
    }


@admin_router.post("", response_model=CapacityOverrideResponse)
@admin_router.post("/", response_model=CapacityOverrideResponse)
@limiter.limit(get_rate_limit("admin"))
async def upsert_capacity_override(
    request: Request,
    payload: CapacityOverrideCreate,
    db: Session = Depends(get_db)
):
    override = CapacityLedger(db).set_override(
        payload.service,
        payload.date_start,
        payload.date_end,
        payload.slot,
        payload.capacity,
    )
    return _override_response(override)


@admin_router.delete("")
@admin_router.delete("/")
@limiter.limit(get_rate_limit("admin"))
async def delete_capacity_override(
    request: Request,
    service: str = Query(...),
    date_start: str = Query(...),
    date_end: Optional[str] = Query(None),
    slot: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    deleted = CapacityLedger(db).clear_override(service, date_start, date_end, slot)
    return {"deleted": deleted}


@admin_router.post("/reset")
@limiter.limit(get_rate_limit("admin"))
async def reset_capacity_overrides(
    request: Request,
    payload: Optional[CapacityResetRequest] = None,
    db: Session = Depends(get_db)
):
    service = payload.service if payload else None
    return {"deleted": CapacityLedger(db).reset_overrides(service)}


@admin_router.post("/reconcile", response_model=ReconcileResponse)
@limiter.limit(get_rate_limit("admin"))
async def reconcile_capacity(
    request: Request,
    date: str = Query(..., description="YYYY-MM-DD"),
    db: Session = Depends(get_db)
):
    day = require_date(date)
    return {"date": day.isoformat(), "corrections": CapacityLedger(db).reconcile(day)}
