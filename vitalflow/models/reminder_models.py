# vitalflow/models/reminder_models.py
from enum import IntEnum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, time

from vitalflow.core.config import settings
from vitalflow.models.common_models import TimestampedModel


class Weekday(IntEnum):
    # same ordinals as datetime.weekday()
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def short_name(self) -> str:
        return self.name[:3].capitalize()


ALL_DAYS: List[Weekday] = list(Weekday)


def _normalize_days(days: Optional[List[Weekday]]) -> Optional[List[Weekday]]:
    if days is None:
        return None
    return sorted({Weekday(d) for d in days})


def _normalize_time(value: Optional[time]) -> Optional[time]:
    # reminders are minute-granular wall-clock times
    if value is None:
        return None
    return value.replace(second=0, microsecond=0, tzinfo=None)


def _require_days(days: Optional[List[Weekday]]) -> Optional[List[Weekday]]:
    if days is not None and not days:
        raise ValueError("daysOfWeek must contain at least one weekday")
    return days


class ReminderBase(BaseModel):
    label: str = Field(default=settings.DEFAULT_REMINDER_LABEL, max_length=200)
    timeOfDay: time
    daysOfWeek: List[Weekday] = Field(default_factory=lambda: list(ALL_DAYS), description="0-6 (Monday-Sunday)")
    isEnabled: bool = Field(default=True)

    @field_validator("daysOfWeek")
    @classmethod
    def normalize_days(cls, v):
        return _normalize_days(v)

    @field_validator("timeOfDay")
    @classmethod
    def normalize_time(cls, v):
        return _normalize_time(v)


class ReminderCreate(ReminderBase):
    @field_validator("daysOfWeek")
    @classmethod
    def require_days(cls, v):
        return _require_days(v)


class ReminderUpdate(BaseModel):
    label: Optional[str] = Field(default=None, max_length=200)
    timeOfDay: Optional[time] = None
    daysOfWeek: Optional[List[Weekday]] = None
    isEnabled: Optional[bool] = None

    @field_validator("daysOfWeek")
    @classmethod
    def normalize_days(cls, v):
        return _require_days(_normalize_days(v))

    @field_validator("timeOfDay")
    @classmethod
    def normalize_time(cls, v):
        return _normalize_time(v)


class ReminderStateUpdate(BaseModel):
    enabled: bool


class Reminder(TimestampedModel, ReminderBase):
    # stored form; an empty daysOfWeek is tolerated here so bad records can be
    # loaded and reported instead of breaking a whole listing
    id: int = Field(alias="_id")


class ReminderPublic(ReminderBase):
    id: int
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    repeatText: Optional[str] = None
    formattedTime: Optional[str] = None
    nextTriggerAt: Optional[datetime] = None
