# vitalflow/models/common_models.py
from pydantic import BaseModel, Field
from datetime import datetime, timezone
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampedModel(BaseModel):
    createdAt: datetime = Field(default_factory=utc_now)
    updatedAt: datetime = Field(default_factory=utc_now)

    class Config:
        populate_by_name = True  # accept both "_id" and "id"
        from_attributes = True


class BaseDBModel(TimestampedModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
