"""
Trial Eligibility API Router
"""

from typing import Optional
from fastapi import APIRouter, Query

from ..schemas.trial import TrialEligibilityResponse
from ..services.trial import trial_eligibility

router = APIRouter(prefix="/api/trial", tags=["Trial"])


@router.get("/eligibility", response_model=TrialEligibilityResponse)
async def get_trial_eligibility(
    trial_required: bool = Query(...),
    trial_completed_at: Optional[str] = Query(None, description="ISO-8601 timestamp")
):
    """Whether a dog may book beyond its trial day, and from when"""
    result = trial_eligibility(trial_required, trial_completed_at)
    return {
        "trial_required": result.trial_required,
        "trial_completed_at": result.trial_completed_at,
        "eligible_from": result.eligible_from,
        "eligible": result.eligible,
    }
