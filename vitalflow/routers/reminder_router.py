# vitalflow/routers/reminder_router.py
from fastapi import APIRouter, Depends, HTTPException, status, Path, Query, Body
from typing import List

from vitalflow.core.errors import InvalidScheduleError, SchedulingError, StoreError
from vitalflow.dependencies import get_lifecycle_handler, get_reminder_store, get_scheduler
from vitalflow.models.reminder_models import (
    Reminder, ReminderCreate, ReminderPublic, ReminderStateUpdate, ReminderUpdate
)
from vitalflow.models.timer_models import RebuildReport
from vitalflow.services.occurrence_service import format_repeat_text, format_time_of_day
from vitalflow.services.reminder_lifecycle import ReminderLifecycleHandler
from vitalflow.services.reminder_scheduler import ReminderScheduler
from vitalflow.services.reminder_store import ReminderStore

router = APIRouter()


def to_public(reminder: Reminder, scheduler: ReminderScheduler) -> ReminderPublic:
    armed = scheduler.armed_timer(reminder.id)
    return ReminderPublic(
        **reminder.model_dump(),
        repeatText=format_repeat_text(reminder.daysOfWeek),
        formattedTime=format_time_of_day(reminder.timeOfDay),
        nextTriggerAt=armed.scheduledFor if armed else None,
    )


def _engine_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidScheduleError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not save reminder")


@router.post("/", response_model=ReminderPublic, status_code=status.HTTP_201_CREATED, summary="Create a reminder")
async def create_reminder(
    reminder_in: ReminderCreate = Body(...),
    handler: ReminderLifecycleHandler = Depends(get_lifecycle_handler),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    try:
        created = await handler.create(reminder_in)
    except (InvalidScheduleError, SchedulingError, StoreError) as e:
        raise _engine_error(e)
    return to_public(created, scheduler)


@router.get("/", response_model=List[ReminderPublic], summary="List reminders ordered by time of day")
async def read_reminders(
    enabled_only: bool = Query(False, description="Only return enabled reminders"),
    store: ReminderStore = Depends(get_reminder_store),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    try:
        reminders = await store.list()
    except StoreError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not load reminders")
    return [to_public(r, scheduler) for r in reminders if r.isEnabled or not enabled_only]


@router.post("/rebuild", response_model=RebuildReport, summary="Re-arm every reminder from the store")
async def rebuild_reminders(scheduler: ReminderScheduler = Depends(get_scheduler)):
    try:
        return await scheduler.rebuild_all()
    except StoreError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not load reminders")


@router.get("/{reminder_id}", response_model=ReminderPublic, summary="Get a reminder")
async def read_reminder(
    reminder_id: int = Path(..., description="Reminder ID"),
    store: ReminderStore = Depends(get_reminder_store),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    try:
        reminder = await store.get(reminder_id)
    except StoreError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not load reminder")
    if not reminder:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found.")
    return to_public(reminder, scheduler)


@router.put("/{reminder_id}", response_model=ReminderPublic, summary="Edit a reminder")
async def update_reminder(
    reminder_id: int = Path(..., description="Reminder ID"),
    reminder_update_data: ReminderUpdate = Body(...),
    handler: ReminderLifecycleHandler = Depends(get_lifecycle_handler),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    try:
        updated = await handler.update(reminder_id, reminder_update_data)
    except (InvalidScheduleError, SchedulingError, StoreError) as e:
        raise _engine_error(e)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found.")
    return to_public(updated, scheduler)


@router.put("/{reminder_id}/state", response_model=ReminderPublic, summary="Enable or disable a reminder")
async def set_reminder_state(
    reminder_id: int = Path(..., description="Reminder ID"),
    state: ReminderStateUpdate = Body(...),
    handler: ReminderLifecycleHandler = Depends(get_lifecycle_handler),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    try:
        updated = await handler.set_enabled(reminder_id, state.enabled)
    except (InvalidScheduleError, SchedulingError, StoreError) as e:
        raise _engine_error(e)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found.")
    return to_public(updated, scheduler)


@router.delete("/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a reminder")
async def delete_reminder(
    reminder_id: int = Path(..., description="Reminder ID"),
    handler: ReminderLifecycleHandler = Depends(get_lifecycle_handler),
):
    try:
        success = await handler.delete(reminder_id)
    except (SchedulingError, StoreError) as e:
        raise _engine_error(e)
    if not success:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reminder not found.")
    return None
