# Shared fakes for the reminder engine tests.
#
# The store, wake-up timer and display sink are replaced by small in-memory
# versions so scheduling behaviour can be checked without Mongo, APScheduler
# or an MQTT broker.

import asyncio
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from vitalflow.core.errors import DisplayDeliveryError, ExactTimerDenied, StoreError, WakeupTimerError
from vitalflow.models.notification_models import DisplayRequest
from vitalflow.models.reminder_models import Reminder, ReminderCreate, Weekday
from vitalflow.models.timer_models import RegisterResult
from vitalflow.services.reminder_lifecycle import ReminderLifecycleHandler
from vitalflow.services.reminder_scheduler import ReminderScheduler

# 2026-10-19 is a Monday
TUESDAY_9AM = datetime(2026, 10, 20, 9, 0, tzinfo=timezone.utc)
MON_WED_FRI = [Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeReminderStore:
    def __init__(self):
        self.records: Dict[int, Reminder] = {}
        self._seq = 0
        self.fail_list = False
        self.fail_get = False
        self.fail_delete = False

    def put(self, **fields) -> Reminder:
        """Seed a record directly, bypassing create-time validation."""
        self._seq += 1
        fields.setdefault("label", "Measure Blood Pressure")
        fields.setdefault("timeOfDay", time(8, 0))
        reminder = Reminder(_id=self._seq, **fields)
        self.records[reminder.id] = reminder
        return reminder

    async def list(self) -> List[Reminder]:
        await asyncio.sleep(0)
        if self.fail_list:
            raise StoreError("store offline")
        return sorted(self.records.values(), key=lambda r: r.timeOfDay)

    async def get(self, reminder_id: int) -> Optional[Reminder]:
        await asyncio.sleep(0)
        if self.fail_get:
            raise StoreError("store offline")
        return self.records.get(reminder_id)

    async def insert(self, reminder_in: ReminderCreate) -> int:
        await asyncio.sleep(0)
        self._seq += 1
        self.records[self._seq] = Reminder(_id=self._seq, **reminder_in.model_dump())
        return self._seq

    async def update(self, reminder: Reminder) -> bool:
        await asyncio.sleep(0)
        if reminder.id not in self.records:
            return False
        self.records[reminder.id] = reminder
        return True

    async def delete(self, reminder_id: int) -> bool:
        await asyncio.sleep(0)
        if self.fail_delete:
            raise StoreError("store offline")
        return self.records.pop(reminder_id, None) is not None


class FakeWakeupTimer:
    """Records every call; `overwrites` counts registrations over a live key."""

    def __init__(self):
        self.active: Dict[int, Tuple[datetime, Dict[str, Any], bool]] = {}
        self.calls: List[tuple] = []
        self.fail_register = 0
        self.fail_cancel = False
        self.deny_exact = False
        self.overwrites = 0

    async def register(self, key, when, payload, exact=True) -> RegisterResult:
        await asyncio.sleep(0)
        self.calls.append(("register", key, when, exact))
        if self.fail_register > 0:
            self.fail_register -= 1
            raise WakeupTimerError("alarm service unavailable")
        if exact and self.deny_exact:
            raise ExactTimerDenied("exact alarms not permitted")
        if key in self.active:
            self.overwrites += 1
        self.active[key] = (when, payload, exact)
        return RegisterResult.OK if exact else RegisterResult.DEGRADED

    async def cancel(self, key) -> None:
        await asyncio.sleep(0)
        self.calls.append(("cancel", key))
        if self.fail_cancel:
            raise WakeupTimerError("alarm service unavailable")
        self.active.pop(key, None)

    def when(self, key) -> Optional[datetime]:
        entry = self.active.get(key)
        return entry[0] if entry else None

    def payload(self, key) -> Dict[str, Any]:
        return self.active[key][1]


class FakeDisplaySink:
    def __init__(self):
        self.shown: List[DisplayRequest] = []
        self.fail = False

    async def display(self, request: DisplayRequest) -> None:
        if self.fail:
            raise DisplayDeliveryError("renderer unavailable")
        self.shown.append(request)


@pytest.fixture
def clock():
    return FakeClock(TUESDAY_9AM)


@pytest.fixture
def store():
    return FakeReminderStore()


@pytest.fixture
def timer():
    return FakeWakeupTimer()


@pytest.fixture
def sink():
    return FakeDisplaySink()


@pytest.fixture
def scheduler(store, timer, clock):
    return ReminderScheduler(store, timer, clock=clock, retry_attempts=3, retry_delay=0, rebuild_concurrency=4)


@pytest.fixture
def handler(store, scheduler, sink, clock):
    return ReminderLifecycleHandler(store, scheduler, sink, clock=clock)
