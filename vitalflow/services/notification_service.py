# vitalflow/services/notification_service.py
import logging
from typing import List, Optional
from datetime import datetime, timezone
from fastapi.encoders import jsonable_encoder
from pymongo.errors import PyMongoError

from vitalflow.core.config import settings
from vitalflow.core.errors import DisplayDeliveryError
from vitalflow.db.mongodb_utils import get_notification_collection
from vitalflow.models.notification_models import DisplayRequest, NotificationCreate, NotificationInDB, NotificationPublic
from vitalflow.mqtt.mqtt_client import mqtt_client

logger = logging.getLogger(__name__)

REMINDER_DUE = "ReminderDue"


def display_topic() -> str:
    return f"{settings.MQTT_TOPIC_PREFIX}/notifications/display"


async def create_notification(notification_in: NotificationCreate) -> Optional[NotificationInDB]:
    notification_collection = get_notification_collection()

    if not notification_in.title:
        if notification_in.type == REMINDER_DUE:
            notification_in.title = settings.REMINDER_NOTIFICATION_TITLE
        else:
            notification_in.title = "System Notification"

    new_notification_db_obj = NotificationInDB(**notification_in.model_dump())
    notification_doc_to_insert = jsonable_encoder(new_notification_db_obj)

    result = await notification_collection.insert_one(notification_doc_to_insert)
    created_doc = await notification_collection.find_one({"_id": result.inserted_id})
    if created_doc:
        logger.info(f"[Notify] Notification created (ID: {result.inserted_id})")
        return NotificationInDB(**created_doc)
    return None


async def get_notifications(skip: int = 0, limit: int = 20, unread_only: bool = False) -> List[NotificationPublic]:
    notification_collection = get_notification_collection()
    query = {"isRead": False} if unread_only else {}
    notifications_cursor = notification_collection.find(query).sort("time", -1).skip(skip).limit(limit)

    results = []
    async for doc in notifications_cursor:
        notif_db = NotificationInDB(**doc)
        results.append(NotificationPublic(**notif_db.model_dump()))
    return results


async def get_notification_by_id(notification_id: str) -> Optional[NotificationPublic]:
    notification_collection = get_notification_collection()
    notification_doc = await notification_collection.find_one({"_id": str(notification_id)})
    if notification_doc:
        return NotificationPublic(**NotificationInDB(**notification_doc).model_dump())
    return None


async def mark_notification_read(notification_id: str) -> Optional[NotificationPublic]:
    notification_collection = get_notification_collection()
    update_doc = jsonable_encoder({"isRead": True, "updatedAt": datetime.now(timezone.utc)})

    result = await notification_collection.update_one({"_id": str(notification_id)}, {"$set": update_doc})
    if result.matched_count >= 1:
        return await get_notification_by_id(notification_id)
    return None


async def mark_all_notifications_read() -> int:
    notification_collection = get_notification_collection()
    update_doc = jsonable_encoder({"isRead": True, "updatedAt": datetime.now(timezone.utc)})
    result = await notification_collection.update_many({"isRead": False}, {"$set": update_doc})
    return result.modified_count


async def delete_notification(notification_id: str) -> bool:
    notification_collection = get_notification_collection()
    result = await notification_collection.delete_one({"_id": str(notification_id)})
    return result.deleted_count == 1


async def delete_all_notifications() -> int:
    notification_collection = get_notification_collection()
    result = await notification_collection.delete_many({})
    return result.deleted_count


class NotificationDisplaySink:
    """
    Surfaces a fired reminder: records a ReminderDue notification, then pushes
    the display request to connected clients over MQTT.

    The stored notification is the durable copy, so only a failed insert is a
    delivery failure; a missed publish is logged by the MQTT client.
    """

    def __init__(self, mqtt=mqtt_client):
        self.mqtt = mqtt

    async def display(self, request: DisplayRequest) -> None:
        notification_in = NotificationCreate(
            type=REMINDER_DUE,
            reminderId=request.reminderId,
            content=request.label,
            time=request.firedAt,
            payload={"reminderId": request.reminderId, "label": request.label},
        )
        try:
            await create_notification(notification_in)
        except PyMongoError as e:
            raise DisplayDeliveryError(f"could not record notification for reminder {request.reminderId}: {e}") from e
        except RuntimeError as e:  # database not connected
            raise DisplayDeliveryError(str(e)) from e

        await self.mqtt.publish_message(display_topic(), request.model_dump(mode="json"), qos=1)
