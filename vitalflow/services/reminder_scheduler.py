# vitalflow/services/reminder_scheduler.py
import asyncio
import logging
from typing import Callable, Dict, List, Optional
from datetime import datetime

from vitalflow.core.config import settings
from vitalflow.core.errors import (
    ExactTimerDenied,
    InvalidScheduleError,
    SchedulingError,
    StoreError,
    WakeupTimerError,
)
from vitalflow.core.keyed_lock import KeyedLock
from vitalflow.models.reminder_models import Reminder
from vitalflow.models.timer_models import ArmedTimer, RebuildReport, RegisterResult, WakeupPayload
from vitalflow.services.occurrence_service import compute_next, local_now
from vitalflow.services.reminder_store import ReminderStore
from vitalflow.services.wakeup_timer import WakeupTimerPort

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """
    Owns the reminder id -> wake-up timer keyspace.

    Nothing else registers or cancels timers. Every operation on a given id
    runs under that id's lock, so at most one timer per id is outstanding and
    same-id operations apply in the order they were issued.
    """

    def __init__(
        self,
        store: ReminderStore,
        timer: WakeupTimerPort,
        *,
        clock: Callable[[], datetime] = local_now,
        retry_attempts: int = settings.ARM_RETRY_ATTEMPTS,
        retry_delay: float = settings.ARM_RETRY_DELAY_SECONDS,
        rebuild_concurrency: int = settings.REBUILD_CONCURRENCY,
    ):
        self.store = store
        self.timer = timer
        self.clock = clock
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.rebuild_concurrency = max(1, rebuild_concurrency)
        self._locks = KeyedLock()
        self._armed: Dict[int, ArmedTimer] = {}

    # --- read-only view ---

    def armed_timer(self, reminder_id: int) -> Optional[ArmedTimer]:
        return self._armed.get(reminder_id)

    def armed_ids(self) -> List[int]:
        return sorted(self._armed)

    # --- public operations ---

    async def arm(self, reminder: Reminder, now: Optional[datetime] = None) -> Optional[ArmedTimer]:
        """Register the next occurrence of an enabled reminder. Disabled reminders are left alone."""
        async with self._locks.hold(reminder.id):
            return await self._arm_locked(reminder, now)

    async def disarm(self, reminder_id: int) -> bool:
        """Cancel whatever timer exists for the id. Safe to call when there is none."""
        async with self._locks.hold(reminder_id):
            return await self._disarm_locked(reminder_id)

    async def rearm(self, reminder: Reminder, now: Optional[datetime] = None) -> Optional[ArmedTimer]:
        """Cancel the current timer, then arm the reminder as it is now."""
        async with self._locks.hold(reminder.id):
            return await self._rearm_locked(reminder, now)

    async def rebuild_all(self) -> RebuildReport:
        """
        Bring the timers in line with the store: one timer per enabled
        reminder, none for disabled, deleted or invalid ones.

        Each id is re-read under its lock, so an edit that lands while the
        rebuild is running is never overwritten with a stale copy.
        """
        reminders = await self.store.list()
        reminder_ids = {r.id for r in reminders} | set(self._armed)
        report = RebuildReport()
        semaphore = asyncio.Semaphore(self.rebuild_concurrency)

        async def reconcile(reminder_id: int):
            async with semaphore:
                async with self._locks.hold(reminder_id):
                    try:
                        fresh = await self.store.get(reminder_id)
                        if fresh is not None and fresh.isEnabled:
                            await self._rearm_locked(fresh)
                            report.armed.append(reminder_id)
                        else:
                            await self._disarm_locked(reminder_id)
                            report.disarmed.append(reminder_id)
                    except (InvalidScheduleError, SchedulingError, StoreError) as e:
                        logger.error(f"[Scheduler] Rebuild failed for reminder {reminder_id}: {e}")
                        report.failed[reminder_id] = str(e)

        await asyncio.gather(*(reconcile(reminder_id) for reminder_id in sorted(reminder_ids)))
        report.armed.sort()
        report.disarmed.sort()
        logger.info(
            f"[Scheduler] Rebuild finished: {len(report.armed)} armed, "
            f"{len(report.disarmed)} disarmed, {len(report.failed)} failed"
        )
        return report

    # --- internals, caller holds the id lock ---

    async def _arm_locked(self, reminder: Reminder, now: Optional[datetime] = None) -> Optional[ArmedTimer]:
        if not reminder.isEnabled:
            logger.debug(f"[Scheduler] Reminder {reminder.id} is disabled, not arming")
            return None

        when = compute_next(reminder.timeOfDay, reminder.daysOfWeek, now or self.clock())
        payload = WakeupPayload(
            id=reminder.id,
            label=reminder.label,
            scheduledFor=when,
            timeOfDay=reminder.timeOfDay,
            daysOfWeek=reminder.daysOfWeek,
        )
        result = await self._register_with_retry(reminder.id, when, payload)
        armed = ArmedTimer(
            reminderId=reminder.id,
            scheduledFor=when,
            label=reminder.label,
            degraded=result is RegisterResult.DEGRADED,
            payload=payload,
        )
        self._armed[reminder.id] = armed
        logger.info(
            f"[Scheduler] Armed reminder {reminder.id} for {when.isoformat()}"
            + (" (inexact)" if armed.degraded else "")
        )
        return armed

    async def _disarm_locked(self, reminder_id: int) -> bool:
        try:
            await self.timer.cancel(reminder_id)
        except WakeupTimerError as e:
            raise SchedulingError(reminder_id, f"could not cancel timer: {e}") from e
        known = self._armed.pop(reminder_id, None) is not None
        if known:
            logger.info(f"[Scheduler] Disarmed reminder {reminder_id}")
        return known

    async def _rearm_locked(self, reminder: Reminder, now: Optional[datetime] = None) -> Optional[ArmedTimer]:
        previous = self._armed.get(reminder.id)
        await self._disarm_locked(reminder.id)
        try:
            return await self._arm_locked(reminder, now)
        except SchedulingError:
            await self._restore(previous)
            raise

    async def _register(self, key: int, when: datetime, payload: WakeupPayload) -> RegisterResult:
        data = payload.model_dump(mode="json")
        try:
            result = await self.timer.register(key, when, data, exact=True)
        except ExactTimerDenied as e:
            logger.warning(f"[Scheduler] Exact timer refused for reminder {key} ({e}), falling back to inexact")
            await self.timer.register(key, when, data, exact=False)
            return RegisterResult.DEGRADED
        if result is RegisterResult.DEGRADED:
            logger.warning(f"[Scheduler] Reminder {key} registered as inexact")
        return result

    async def _register_with_retry(self, key: int, when: datetime, payload: WakeupPayload) -> RegisterResult:
        last_error: Optional[WakeupTimerError] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await self._register(key, when, payload)
            except WakeupTimerError as e:
                last_error = e
                logger.warning(f"[Scheduler] Registering reminder {key} failed (attempt {attempt}/{self.retry_attempts}): {e}")
                if attempt < self.retry_attempts and self.retry_delay > 0:
                    await asyncio.sleep(self.retry_delay)
        raise SchedulingError(key, f"could not register timer: {last_error}") from last_error

    async def _restore(self, previous: Optional[ArmedTimer]) -> None:
        if previous is None:
            return
        if previous.scheduledFor <= self.clock():
            logger.warning(f"[Scheduler] Previous timer of reminder {previous.reminderId} already elapsed, not restoring")
            return
        payload = previous.payload or WakeupPayload(
            id=previous.reminderId, label=previous.label, scheduledFor=previous.scheduledFor
        )
        try:
            result = await self._register(previous.reminderId, previous.scheduledFor, payload)
        except WakeupTimerError as e:
            logger.error(f"[Scheduler] Could not restore previous timer of reminder {previous.reminderId}: {e}")
            return
        self._armed[previous.reminderId] = previous.model_copy(update={"degraded": result is RegisterResult.DEGRADED})
        logger.warning(f"[Scheduler] Restored previous timer of reminder {previous.reminderId} for {previous.scheduledFor.isoformat()}")
