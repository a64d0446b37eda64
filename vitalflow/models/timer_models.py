# vitalflow/models/timer_models.py
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, time

from vitalflow.models.reminder_models import Weekday


class RegisterResult(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"  # accepted as inexact / best effort


class WakeupPayload(BaseModel):
    """Carried by every timer registration and handed back on fire."""
    id: int
    label: Optional[str] = None
    scheduledFor: Optional[datetime] = None
    # schedule copy, lets the fire handler re-arm if the store is unreachable
    timeOfDay: Optional[time] = None
    daysOfWeek: List[Weekday] = Field(default_factory=list)


class ArmedTimer(BaseModel):
    reminderId: int
    scheduledFor: datetime
    label: Optional[str] = None
    degraded: bool = False
    # exactly what was registered, re-used when the timer has to be restored
    payload: Optional[WakeupPayload] = None


class RebuildReport(BaseModel):
    armed: List[int] = Field(default_factory=list)
    disarmed: List[int] = Field(default_factory=list)
    failed: Dict[int, str] = Field(default_factory=dict)
