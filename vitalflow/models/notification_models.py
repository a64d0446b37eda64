# vitalflow/models/notification_models.py
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime

from vitalflow.models.common_models import BaseDBModel, utc_now


class DisplayRequest(BaseModel):
    """What the notification renderer receives when a reminder fires."""
    reminderId: int
    label: str
    firedAt: datetime = Field(default_factory=utc_now)


class NotificationBase(BaseModel):
    type: str  # 'ReminderDue' is the only producer for now
    reminderId: Optional[int] = None
    title: Optional[str] = None
    content: str
    time: datetime = Field(default_factory=utc_now)
    isRead: bool = Field(default=False)
    payload: Optional[Dict[str, Any]] = None


class NotificationCreate(NotificationBase):
    pass


class NotificationInDB(BaseDBModel, NotificationBase):
    pass


class NotificationPublic(NotificationBase):
    id: str
