# vitalflow/services/reminder_store.py
import logging
from typing import List, Optional, Protocol
from datetime import datetime, timezone
from fastapi.encoders import jsonable_encoder
from pymongo.errors import PyMongoError

from vitalflow.core.errors import StoreError
from vitalflow.db.mongodb_utils import get_counter_collection, get_reminder_collection, next_sequence
from vitalflow.models.reminder_models import Reminder, ReminderCreate

logger = logging.getLogger(__name__)

REMINDER_SEQUENCE = "reminders"


class ReminderStore(Protocol):
    """Durable record of reminders. The scheduling core only talks to this interface."""

    async def list(self) -> List[Reminder]: ...

    async def get(self, reminder_id: int) -> Optional[Reminder]: ...

    async def insert(self, reminder_in: ReminderCreate) -> int: ...

    async def update(self, reminder: Reminder) -> bool: ...

    async def delete(self, reminder_id: int) -> bool: ...


class MongoReminderStore:
    """ReminderStore backed by the `reminders` collection with integer ids from `counters`."""

    def __init__(self, collection=None, counters=None):
        # resolved lazily so the store can be built before Mongo is connected
        self._collection = collection
        self._counters = counters

    @property
    def collection(self):
        return self._collection if self._collection is not None else get_reminder_collection()

    @property
    def counters(self):
        return self._counters if self._counters is not None else get_counter_collection()

    async def list(self) -> List[Reminder]:
        try:
            cursor = self.collection.find({}).sort("timeOfDay", 1)
            return [Reminder(**doc) async for doc in cursor]
        except PyMongoError as e:
            raise StoreError(f"could not list reminders: {e}") from e

    async def get(self, reminder_id: int) -> Optional[Reminder]:
        try:
            doc = await self.collection.find_one({"_id": int(reminder_id)})
        except PyMongoError as e:
            raise StoreError(f"could not load reminder {reminder_id}: {e}") from e
        return Reminder(**doc) if doc else None

    async def insert(self, reminder_in: ReminderCreate) -> int:
        try:
            reminder_id = await next_sequence(REMINDER_SEQUENCE, self.counters)
            reminder = Reminder(_id=reminder_id, **reminder_in.model_dump())
            await self.collection.insert_one(jsonable_encoder(reminder))
        except PyMongoError as e:
            raise StoreError(f"could not save reminder: {e}") from e
        logger.info(f"[Store] Inserted reminder {reminder_id}")
        return reminder_id

    async def update(self, reminder: Reminder) -> bool:
        reminder = reminder.model_copy(update={"updatedAt": datetime.now(timezone.utc)})
        try:
            result = await self.collection.replace_one({"_id": reminder.id}, jsonable_encoder(reminder))
        except PyMongoError as e:
            raise StoreError(f"could not update reminder {reminder.id}: {e}") from e
        return result.matched_count == 1

    async def delete(self, reminder_id: int) -> bool:
        try:
            result = await self.collection.delete_one({"_id": int(reminder_id)})
        except PyMongoError as e:
            raise StoreError(f"could not delete reminder {reminder_id}: {e}") from e
        if result.deleted_count == 1:
            logger.info(f"[Store] Deleted reminder {reminder_id}")
        return result.deleted_count == 1
