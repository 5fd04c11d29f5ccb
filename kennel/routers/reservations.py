"""
Reservations API Router

Hold lifecycle over HTTP:
- POST /api/reservations                      create or replay a hold
- GET  /api/reservations/{id}                 hold view
- POST /api/reservations/{id}/release         give the unit back (always 200)
- POST /api/reservations/{id}/payment-result  confirm + book, or release
- POST /api/reservations/{id}/cancel          cancel a confirmed booking (admin)
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.capacity import ALL_DAY
from ..models.reservation_hold import HoldStatus, ReservationHold
from ..schemas.reservation import (
    ReservationCreate,
    ReservationResponse,
    ReservationDetail,
    ReleaseResponse,
    PaymentResultRequest,
    PaymentResultResponse,
    CancelResponse,
)
from ..services.booking_service import BookingService
from ..services.reservation_holder import ReservationHolder
from ..utils.logging_config import set_request_context
from ..utils.rate_limiter import limiter, get_rate_limit
from ..utils.security import require_admin

router = APIRouter(prefix="/api/reservations", tags=["Reservations"])

FULL_MESSAGE = "Fully booked, please choose another date or slot"


def _slot_out(slot: str):
    return None if slot == ALL_DAY else slot


def _hold_response(hold: ReservationHold) -> dict:
    return {
        "reservation_id": hold.id,
        "status": hold.status,
        "expires_at": hold.expires_at,
        "service": hold.service,
        "date": hold.date.isoformat(),
        "slot": _slot_out(hold.slot),
    }


def _hold_detail(hold: ReservationHold) -> dict:
    data = _hold_response(hold)
    data.update({
        "user_email": hold.user_email,
        "dog_id": hold.dog_id,
        "payment_reference": hold.payment_reference,
        "created_at": hold.created_at,
    })
    return data


def _booking_response(booking) -> dict:
    return {
        "id": booking.id,
        "hold_id": booking.hold_id,
        "service": booking.service,
        "date": booking.date.isoformat(),
        "slot": _slot_out(booking.slot),
        "status": booking.status,
        "total": booking.total,
        "currency": booking.currency,
        "pricing_model": booking.pricing_model,
        "pricing_snapshot": booking.pricing_snapshot,
        "payment_reference": booking.payment_reference,
    }


def _get_hold_or_404(holder: ReservationHolder, reservation_id: str) -> ReservationHold:
    hold = holder.get_hold(reservation_id)
    if not hold:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return hold


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("reservation_create"))
async def create_reservation(
    request: Request,
    payload: ReservationCreate,
    db: Session = Depends(get_db)
):
    """
    Hold one unit of capacity for RESERVATION_TTL_MIN minutes.

    201 for a new hold, 200 with the same hold when the idempotency key was
    seen before, 409 FULL when no capacity is left.
    """
    set_request_context(getattr(request.state, "request_id", ""), payload.user_email)

    result = ReservationHolder(db).create_hold(
        idempotency_key=payload.idempotency_key,
        service=payload.service,
        day=payload.date,
        slot=payload.slot,
        user_email=payload.user_email,
        dog_id=payload.dog_id,
    )

    if result.is_full:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "FULL", "message": FULL_MESSAGE}
        )

    status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ReservationResponse(**_hold_response(result.hold)))
    )


@router.get("/{reservation_id}", response_model=ReservationDetail)
async def get_reservation(reservation_id: str, db: Session = Depends(get_db)):
    hold = _get_hold_or_404(ReservationHolder(db), reservation_id)
    return _hold_detail(hold)


@router.post("/{reservation_id}/release", response_model=ReleaseResponse)
@limiter.limit(get_rate_limit("reservation_update"))
async def release_reservation(
    request: Request,
    reservation_id: str,
    db: Session = Depends(get_db)
):
    """Release an active hold. Unknown, confirmed or already released holds are a no-op."""
    released = ReservationHolder(db).release_hold(reservation_id)
    return {"reservation_id": reservation_id, "released": released}


@router.post("/{reservation_id}/payment-result", response_model=PaymentResultResponse)
@limiter.limit(get_rate_limit("reservation_update"))
async def payment_result(
    request: Request,
    reservation_id: str,
    payload: PaymentResultRequest,
    db: Session = Depends(get_db)
):
    """
    Payment gateway verdict for a hold.

    success: price, confirm the hold and store the booking with its pricing
    snapshot. failure: release the hold.
    """
    service = BookingService(db)
    _get_hold_or_404(service.holder, reservation_id)

    booking = service.handle_payment_result(
        reservation_id,
        success=payload.success,
        model=payload.pricing_model,
        stay=payload.boarding.to_input() if payload.boarding else None,
        payment_reference=payload.payment_reference,
    )

    hold = service.holder.get_hold(reservation_id)
    if payload.success and booking is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "HOLD_NOT_ACTIVE",
                "message": f"Reservation is {hold.status}, it can no longer be confirmed"
            }
        )

    return {
        "reservation_id": reservation_id,
        "status": hold.status,
        "booking": _booking_response(booking) if booking else None,
    }


@router.post("/{reservation_id}/cancel", response_model=CancelResponse, dependencies=[Depends(require_admin)])
async def cancel_reservation(reservation_id: str, db: Session = Depends(get_db)):
    """Cancel a confirmed booking and give its unit back"""
    holder = ReservationHolder(db)
    hold = _get_hold_or_404(holder, reservation_id)
    if hold.status != HoldStatus.CONFIRMED.value:
        return {"reservation_id": reservation_id, "cancelled": False}
    return {"reservation_id": reservation_id, "cancelled": holder.cancel_confirmed(reservation_id)}
