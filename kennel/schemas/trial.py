from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class TrialEligibilityResponse(BaseModel):
    trial_required: bool
    trial_completed_at: Optional[datetime] = None
    eligible_from: Optional[datetime] = None
    eligible: bool
