"""
Pricing API Router

Price quotes under an explicitly chosen pricing model. Nothing is stored.
"""

from fastapi import APIRouter, Depends, Request

from ..errors import PricingValidationError
from ..models.capacity import BOARDING_KEYS, ServiceKey, normalize_service
from ..schemas.pricing import QuoteRequest, QuoteResponse
from ..services.pricing_engine import PricingEngine, get_pricing_engine
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/pricing", tags=["Pricing"])


@router.post("/quote", response_model=QuoteResponse)
@limiter.limit(get_rate_limit("pricing_quote"))
async def quote(
    request: Request,
    payload: QuoteRequest,
    engine: PricingEngine = Depends(get_pricing_engine)
):
    """
    Quote a daycare, trial or boarding price.

    Boarding requires `boarding` stay details.
    """
    service = normalize_service(payload.service)

    if service == ServiceKey.DAYCARE:
        result = engine.compute_daycare(payload.model)
    elif service == ServiceKey.TRIAL:
        result = engine.compute_trial(payload.model)
    elif service in BOARDING_KEYS:
        if payload.boarding is None:
            raise PricingValidationError("Boarding requires stay details", field="boarding")
        result = engine.compute_boarding(payload.boarding.to_input(), payload.model)
    else:
        raise PricingValidationError(f"No pricing for service {service.value}", field="service")

    snapshot = engine.payment_snapshot(result, payload.currency)
    return {
        "service": service.value,
        "model": result.model.value,
        "total": result.total,
        "nights": result.nights,
        "per_night": result.per_night,
        "pm_surcharge": result.pm_surcharge,
        "currency": snapshot.currency,
    }
