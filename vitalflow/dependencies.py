# vitalflow/dependencies.py
from fastapi import HTTPException, Request, status

from vitalflow.services.reminder_lifecycle import ReminderLifecycleHandler
from vitalflow.services.reminder_scheduler import ReminderScheduler
from vitalflow.services.reminder_store import ReminderStore


def _component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        # lifespan has not wired the engine (startup failed or still running)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Reminder engine not ready")
    return component


async def get_reminder_store(request: Request) -> ReminderStore:
    return _component(request, "reminder_store")


async def get_scheduler(request: Request) -> ReminderScheduler:
    return _component(request, "reminder_scheduler")


async def get_lifecycle_handler(request: Request) -> ReminderLifecycleHandler:
    return _component(request, "lifecycle_handler")
