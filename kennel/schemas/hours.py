"""
Operating hours schemas
"""

from typing import List, Optional
from pydantic import BaseModel


class TimeWindowResponse(BaseModel):
    start: str
    end: str
    label: str


class WindowsResponse(BaseModel):
    date: str
    day_name: Optional[str] = None
    closed: bool
    windows: List[TimeWindowResponse]


class SlotsResponse(BaseModel):
    date: str
    step_minutes: int
    slots: List[str]


class SlotValidationResponse(BaseModel):
    date: str
    slot: str
    valid: bool
