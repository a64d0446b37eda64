# vitalflow/services/reminder_lifecycle.py
import logging
from typing import Any, Callable, Dict, Optional, Protocol
from datetime import datetime

from pydantic import ValidationError

from vitalflow.core.config import settings
from vitalflow.core.errors import (
    DisplayDeliveryError,
    InvalidScheduleError,
    SchedulingError,
    StoreError,
)
from vitalflow.core.keyed_lock import KeyedLock
from vitalflow.models.notification_models import DisplayRequest
from vitalflow.models.reminder_models import Reminder, ReminderCreate, ReminderUpdate
from vitalflow.models.timer_models import WakeupPayload
from vitalflow.services.occurrence_service import local_now
from vitalflow.services.reminder_scheduler import ReminderScheduler
from vitalflow.services.reminder_store import ReminderStore

logger = logging.getLogger(__name__)


class DisplaySink(Protocol):
    async def display(self, request: DisplayRequest) -> None: ...


class ReminderLifecycleHandler:
    """
    Drives every reminder state change: create, edit, enable/disable, delete
    and fire. Keeps the store and the scheduler in step, and is the only
    caller of the scheduler outside of start-up rebuilds.
    """

    def __init__(
        self,
        store: ReminderStore,
        scheduler: ReminderScheduler,
        display_sink: DisplaySink,
        *,
        clock: Callable[[], datetime] = local_now,
    ):
        self.store = store
        self.scheduler = scheduler
        self.display_sink = display_sink
        self.clock = clock
        self._locks = KeyedLock()

    async def create(self, reminder_in: ReminderCreate) -> Reminder:
        reminder_id = await self.store.insert(reminder_in)
        async with self._locks.hold(reminder_id):
            reminder = await self.store.get(reminder_id)
            if reminder is None:
                raise StoreError(f"reminder {reminder_id} vanished right after insert")
            try:
                await self.scheduler.arm(reminder)
            except (SchedulingError, InvalidScheduleError):
                logger.error(f"[Lifecycle] Arming new reminder {reminder_id} failed, removing it again")
                await self.store.delete(reminder_id)
                raise
        logger.info(f"[Lifecycle] Created reminder {reminder_id} ({reminder.label})")
        return reminder

    async def update(self, reminder_id: int, changes: ReminderUpdate) -> Optional[Reminder]:
        """Apply a partial edit and re-arm. Returns None when the reminder does not exist."""
        async with self._locks.hold(reminder_id):
            current = await self.store.get(reminder_id)
            if current is None:
                return None

            data = changes.model_dump(exclude_unset=True, exclude_none=True)
            updated = current.model_copy(update=data)
            if not await self.store.update(updated):
                return None

            try:
                await self.scheduler.rearm(updated)
            except (SchedulingError, InvalidScheduleError) as e:
                logger.error(f"[Lifecycle] Re-arming reminder {reminder_id} failed, reverting edit: {e}")
                await self.store.update(current)
                raise
            logger.info(f"[Lifecycle] Updated reminder {reminder_id}: {sorted(data)}")
            return await self.store.get(reminder_id)

    async def set_enabled(self, reminder_id: int, enabled: bool) -> Optional[Reminder]:
        return await self.update(reminder_id, ReminderUpdate(isEnabled=enabled))

    async def delete(self, reminder_id: int) -> bool:
        async with self._locks.hold(reminder_id):
            current = await self.store.get(reminder_id)
            await self.scheduler.disarm(reminder_id)
            if current is None:
                return False
            try:
                deleted = await self.store.delete(reminder_id)
            except StoreError:
                logger.error(f"[Lifecycle] Deleting reminder {reminder_id} failed, arming it again")
                try:
                    await self.scheduler.arm(current)
                except (SchedulingError, InvalidScheduleError) as e:
                    logger.error(f"[Lifecycle] Could not re-arm reminder {reminder_id}: {e}")
                raise
        if deleted:
            logger.info(f"[Lifecycle] Deleted reminder {reminder_id}")
        return deleted

    async def on_fire(
        self,
        reminder_id: int,
        scheduled_for: Optional[datetime] = None,
        fired_at: Optional[datetime] = None,
        payload: Optional[WakeupPayload] = None,
    ) -> Optional[DisplayRequest]:
        """
        Handle a timer firing: schedule the next occurrence, then surface the
        notification. Fires for deleted or disabled reminders are dropped.

        The next occurrence is computed from the later of the delivery time and
        the scheduled instant, so an early delivery never re-arms the same slot.
        """
        now = self.clock()
        fired_at = self._aware(fired_at, now) or now
        scheduled_for = self._aware(scheduled_for, now)
        reference = max(fired_at, scheduled_for) if scheduled_for else fired_at

        async with self._locks.hold(reminder_id):
            try:
                reminder = await self.store.get(reminder_id)
            except StoreError as e:
                logger.error(f"[Lifecycle] Store unavailable while firing reminder {reminder_id}: {e}")
                reminder = self._from_payload(reminder_id, payload)
                if reminder is None:
                    label = (payload.label if payload else None) or settings.DEFAULT_REMINDER_LABEL
                    logger.error(f"[Lifecycle] Reminder {reminder_id} fired without a schedule copy, not re-arming")
                    return await self._display(DisplayRequest(reminderId=reminder_id, label=label, firedAt=fired_at))
            else:
                if reminder is None or not reminder.isEnabled:
                    state = "deleted" if reminder is None else "disabled"
                    logger.info(f"[Lifecycle] Ignoring fire for {state} reminder {reminder_id}")
                    await self._disarm_quietly(reminder_id)
                    return None

            try:
                await self.scheduler.rearm(reminder, now=reference)
            except (SchedulingError, InvalidScheduleError) as e:
                logger.error(f"[Lifecycle] Could not schedule next occurrence of reminder {reminder_id}: {e}")

            request = DisplayRequest(reminderId=reminder_id, label=reminder.label, firedAt=fired_at)
            return await self._display(request)

    async def handle_fire_event(self, key: int, payload: Dict[str, Any]) -> Optional[DisplayRequest]:
        """Callback for the wake-up timer and the MQTT fired topic."""
        try:
            wakeup = WakeupPayload(**{**(payload or {}), "id": int(key)})
        except (ValidationError, ValueError) as e:
            logger.error(f"[Lifecycle] Malformed fire event for {key}: {e}")
            return None
        return await self.on_fire(wakeup.id, scheduled_for=wakeup.scheduledFor, payload=wakeup)

    # --- helpers ---

    async def _display(self, request: DisplayRequest) -> DisplayRequest:
        try:
            await self.display_sink.display(request)
        except DisplayDeliveryError as e:
            logger.error(f"[Lifecycle] Could not display reminder {request.reminderId}: {e}")
        return request

    async def _disarm_quietly(self, reminder_id: int) -> None:
        try:
            await self.scheduler.disarm(reminder_id)
        except SchedulingError as e:
            logger.error(f"[Lifecycle] Could not disarm reminder {reminder_id}: {e}")

    @staticmethod
    def _from_payload(reminder_id: int, payload: Optional[WakeupPayload]) -> Optional[Reminder]:
        if payload is None or payload.timeOfDay is None or not payload.daysOfWeek:
            return None
        return Reminder(
            _id=reminder_id,
            label=payload.label or settings.DEFAULT_REMINDER_LABEL,
            timeOfDay=payload.timeOfDay,
            daysOfWeek=payload.daysOfWeek,
            isEnabled=True,
        )

    @staticmethod
    def _aware(value: Optional[datetime], now: datetime) -> Optional[datetime]:
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=now.tzinfo)
