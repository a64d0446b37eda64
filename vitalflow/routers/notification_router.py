# vitalflow/routers/notification_router.py
from fastapi import APIRouter, HTTPException, status, Path, Query
from typing import List

from vitalflow.models.notification_models import NotificationPublic
from vitalflow.services import notification_service

router = APIRouter()


@router.get("/", response_model=List[NotificationPublic], summary="List notifications, newest first")
async def read_notifications(
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    unread_only: bool = Query(False, description="Only unread notifications"),
):
    return await notification_service.get_notifications(skip=skip, limit=limit, unread_only=unread_only)


@router.put("/read-all", summary="Mark all unread notifications as read")
async def mark_all_notifications_as_read():
    modified_count = await notification_service.mark_all_notifications_read()
    return {"message": f"{modified_count} notifications marked as read."}


@router.get("/{notification_id}", response_model=NotificationPublic, summary="Get a notification")
async def read_single_notification(notification_id: str = Path(..., description="Notification ID")):
    notification = await notification_service.get_notification_by_id(notification_id)
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")
    return notification


@router.put("/{notification_id}/read", response_model=NotificationPublic, summary="Mark a notification as read")
async def mark_single_notification_as_read(notification_id: str = Path(..., description="Notification ID")):
    notification = await notification_service.mark_notification_read(notification_id)
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")
    return notification


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a notification")
async def delete_single_notification(notification_id: str = Path(..., description="Notification ID")):
    if not await notification_service.delete_notification(notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found.")
    return None


@router.delete("/", summary="Delete all notifications")
async def delete_all_notifications():
    deleted_count = await notification_service.delete_all_notifications()
    return {"message": f"{deleted_count} notifications deleted."}
