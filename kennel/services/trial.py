"""
Trial-day eligibility

A dog that has completed its trial day may book other services from
local midnight of the following day.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Union
from zoneinfo import ZoneInfo

from ..config import settings
from ..errors import ValidationError
from ..utils.clock import parse_iso_datetime, to_local


@dataclass
class TrialEligibility:
    trial_required: bool
    trial_completed_at: Optional[datetime]
    eligible_from: Optional[datetime]
    eligible: bool

    def to_dict(self) -> Dict:
        return {
            "trial_required": self.trial_required,
            "trial_completed_at": self.trial_completed_at.isoformat() if self.trial_completed_at else None,
            "eligible_from": self.eligible_from.isoformat() if self.eligible_from else None,
            "eligible": self.eligible,
        }


def start_of_next_day(value: datetime) -> datetime:
    """Midnight after `value`, in `value`'s timezone"""
    following = value.date() + timedelta(days=1)
    return datetime(following.year, following.month, following.day, tzinfo=value.tzinfo)


def trial_eligibility(
    trial_required: bool,
    trial_completed_at: Union[str, datetime, None] = None,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None
) -> TrialEligibility:
    """
    Derive eligibility from the trial state of a dog.

    Naive timestamps (including `now`) are read in the business timezone.
    """
    if trial_required:
        return TrialEligibility(True, None, None, False)

    if not trial_completed_at:
        return TrialEligibility(False, None, None, True)

    tz_name = tz_name or settings.business_timezone
    try:
        completed = to_local(parse_iso_datetime(trial_completed_at), tz_name)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Invalid trial_completed_at timestamp: {trial_completed_at!r}",
            field="trial_completed_at",
        )

    eligible_from = start_of_next_day(completed)
    current = to_local(now, tz_name) if now else datetime.now(ZoneInfo(tz_name))

    return TrialEligibility(
        trial_required=False,
        trial_completed_at=completed,
        eligible_from=eligible_from,
        eligible=current >= eligible_from,
    )
