# vitalflow/services/wakeup_timer.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set, Tuple
from datetime import datetime

from apscheduler.events import EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from vitalflow.core.config import settings
from vitalflow.core.errors import WakeupTimerError
from vitalflow.models.timer_models import RegisterResult
from vitalflow.services.occurrence_service import reminder_timezone

logger = logging.getLogger(__name__)

FireCallback = Callable[[int, Dict[str, Any]], Awaitable[Any]]

JOB_PREFIX = "reminder_"


class WakeupTimerPort(Protocol):
    """One future callback per integer key; register over an existing key is replace-or-undefined."""

    async def register(self, key: int, when: datetime, payload: Dict[str, Any], exact: bool = True) -> RegisterResult: ...

    async def cancel(self, key: int) -> None: ...


class ApschedulerWakeupTimer:
    """
    In-process wake-up timer: one APScheduler date job per key.

    Jobs live in memory only, so they are gone after a restart; the reminder
    scheduler rebuilds them from the store on start-up.

    Exact registrations use a short misfire grace window. A job that misses
    it (suspended process, blocked loop) is still delivered, late, from the
    missed-job listener. When exact timers are not allowed the registration
    falls back to an inexact job with no grace limit and DEGRADED is returned.
    """

    def __init__(
        self,
        fire_callback: Optional[FireCallback] = None,
        *,
        exact_allowed: bool = settings.EXACT_TIMERS_ALLOWED,
        misfire_grace_seconds: int = settings.EXACT_MISFIRE_GRACE_SECONDS,
    ):
        self.fire_callback = fire_callback
        self.exact_allowed = exact_allowed
        self.misfire_grace_seconds = misfire_grace_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # key -> (run time, payload) of the outstanding job
        self._pending: Dict[int, Tuple[datetime, Dict[str, Any]]] = {}
        self._late_tasks: Set[asyncio.Task] = set()

    @staticmethod
    def job_id(key: int) -> str:
        return f"{JOB_PREFIX}{key}"

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def set_fire_callback(self, fire_callback: FireCallback) -> None:
        self.fire_callback = fire_callback

    def start(self) -> None:
        """Start the underlying scheduler. Must be called from inside the running event loop."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._scheduler = AsyncIOScheduler(timezone=reminder_timezone())
        self._scheduler.add_listener(self._job_missed, EVENT_JOB_MISSED)
        self._scheduler.start()
        logger.info("[Timer] Wake-up timer started")

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("[Timer] Wake-up timer stopped")
        self._scheduler = None
        self._pending.clear()

    async def register(self, key: int, when: datetime, payload: Dict[str, Any], exact: bool = True) -> RegisterResult:
        if not self.running:
            raise WakeupTimerError("wake-up timer is not running")

        precise = exact and self.exact_allowed
        if exact and not precise:
            logger.warning(f"[Timer] Exact timers not allowed, registering reminder {key} as inexact")
        try:
            job = self._scheduler.add_job(
                self._fire,
                trigger=DateTrigger(run_date=when),
                args=[key, payload],
                id=self.job_id(key),
                replace_existing=True,
                coalesce=True,
                misfire_grace_time=self.misfire_grace_seconds if precise else None,
            )
        except (ValueError, LookupError) as e:
            raise WakeupTimerError(f"could not register timer {key}: {e}") from e
        self._pending[key] = (job.trigger.run_date, payload)
        return RegisterResult.OK if precise else RegisterResult.DEGRADED

    async def cancel(self, key: int) -> None:
        self._pending.pop(key, None)
        if not self.running:
            return
        try:
            self._scheduler.remove_job(self.job_id(key))
        except JobLookupError:
            pass  # nothing outstanding

    def next_fire_time(self, key: int) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(self.job_id(key))
        return job.next_run_time if job else None

    def pending_keys(self):
        if not self.running:
            return []
        return sorted(int(job.id[len(JOB_PREFIX):]) for job in self._scheduler.get_jobs())

    async def _fire(self, key: int, payload: Dict[str, Any]) -> None:
        self._pending.pop(key, None)
        if self.fire_callback is None:
            logger.warning(f"[Timer] Timer {key} fired with no callback attached")
            return
        await self.fire_callback(key, payload)

    def _job_missed(self, event: JobExecutionEvent) -> None:
        """Deliver a job that ran past its grace window instead of dropping it."""
        if not event.job_id.startswith(JOB_PREFIX):
            return
        key = int(event.job_id[len(JOB_PREFIX):])
        entry = self._pending.get(key)
        # a newer registration for the key has its own job
        if entry is None or entry[0] != event.scheduled_run_time:
            return
        _, payload = entry
        logger.warning(f"[Timer] Timer {key} missed its slot at {event.scheduled_run_time.isoformat()}, delivering late")
        task = self._loop.create_task(self._fire(key, payload))
        self._late_tasks.add(task)
        task.add_done_callback(self._late_tasks.discard)
