# Tests for ReminderScheduler: arming, disarming, failure handling and rebuilds.

import asyncio
from datetime import datetime, time, timedelta, timezone

import pytest

from vitalflow.core.errors import InvalidScheduleError, SchedulingError, StoreError
from vitalflow.models.reminder_models import Weekday

WEDNESDAY_8AM = datetime(2026, 10, 21, 8, 0, tzinfo=timezone.utc)
MON_WED_FRI = [Weekday.MONDAY, Weekday.WEDNESDAY, Weekday.FRIDAY]


class TestArm:
    @pytest.mark.asyncio
    async def test_arms_next_occurrence(self, scheduler, store, timer):
        reminder = store.put(label="Morning reading", daysOfWeek=MON_WED_FRI)

        armed = await scheduler.arm(reminder)

        assert armed.scheduledFor == WEDNESDAY_8AM
        assert not armed.degraded
        assert timer.when(reminder.id) == WEDNESDAY_8AM
        assert scheduler.armed_timer(reminder.id) == armed
        payload = timer.payload(reminder.id)
        assert payload["id"] == reminder.id
        assert payload["label"] == "Morning reading"
        assert payload["daysOfWeek"] == [0, 2, 4]
        assert payload["timeOfDay"] == "08:00:00"

    @pytest.mark.asyncio
    async def test_disabled_reminder_is_not_armed(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI, isEnabled=False)

        assert await scheduler.arm(reminder) is None
        assert timer.calls == []
        assert scheduler.armed_ids() == []

    @pytest.mark.asyncio
    async def test_empty_weekdays_raise_invalid_schedule(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=[])

        with pytest.raises(InvalidScheduleError):
            await scheduler.arm(reminder)
        assert timer.active == {}

    @pytest.mark.asyncio
    async def test_explicit_now_overrides_clock(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)

        armed = await scheduler.arm(reminder, now=WEDNESDAY_8AM)

        assert armed.scheduledFor == datetime(2026, 10, 23, 8, 0, tzinfo=timezone.utc)


class TestDisarm:
    @pytest.mark.asyncio
    async def test_disarm_cancels_timer(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        await scheduler.arm(reminder)

        assert await scheduler.disarm(reminder.id) is True
        assert timer.active == {}
        assert scheduler.armed_timer(reminder.id) is None

    @pytest.mark.asyncio
    async def test_disarm_is_idempotent(self, scheduler, timer):
        assert await scheduler.disarm(42) is False
        assert await scheduler.disarm(42) is False
        assert timer.active == {}

    @pytest.mark.asyncio
    async def test_cancel_failure_leaves_registry_untouched(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        armed = await scheduler.arm(reminder)
        timer.fail_cancel = True

        with pytest.raises(SchedulingError) as exc_info:
            await scheduler.disarm(reminder.id)

        assert exc_info.value.reminder_id == reminder.id
        assert scheduler.armed_timer(reminder.id) == armed
        assert timer.when(reminder.id) == WEDNESDAY_8AM


class TestRearm:
    @pytest.mark.asyncio
    async def test_cancels_before_registering(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        await scheduler.arm(reminder)
        timer.calls.clear()

        await scheduler.rearm(reminder.model_copy(update={"timeOfDay": time(18, 30)}))

        assert [c[0] for c in timer.calls] == ["cancel", "register"]
        assert timer.overwrites == 0
        assert timer.when(reminder.id) == datetime(2026, 10, 21, 18, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_rearm_disabled_leaves_nothing_armed(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        await scheduler.arm(reminder)

        result = await scheduler.rearm(reminder.model_copy(update={"isEnabled": False}))

        assert result is None
        assert timer.active == {}
        assert scheduler.armed_ids() == []

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        timer.fail_register = 2

        armed = await scheduler.rearm(reminder)

        assert armed.scheduledFor == WEDNESDAY_8AM
        assert len([c for c in timer.calls if c[0] == "register"]) == 3

    @pytest.mark.asyncio
    async def test_failed_rearm_restores_previous_timer(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        previous = await scheduler.arm(reminder)
        timer.fail_register = 3  # every retry fails, the restore succeeds

        with pytest.raises(SchedulingError):
            await scheduler.rearm(reminder.model_copy(update={"timeOfDay": time(20, 0)}))

        assert timer.when(reminder.id) == previous.scheduledFor
        assert scheduler.armed_timer(reminder.id).scheduledFor == previous.scheduledFor

    @pytest.mark.asyncio
    async def test_elapsed_previous_timer_is_not_restored(self, scheduler, store, timer, clock):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        await scheduler.arm(reminder)
        clock.now = WEDNESDAY_8AM + timedelta(minutes=5)
        timer.fail_register = 3

        with pytest.raises(SchedulingError):
            await scheduler.rearm(reminder)

        assert timer.active == {}
        assert scheduler.armed_timer(reminder.id) is None


class TestDegradedRegistration:
    @pytest.mark.asyncio
    async def test_exact_denied_falls_back_to_inexact(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        timer.deny_exact = True

        armed = await scheduler.arm(reminder)

        assert armed.degraded is True
        when, _, exact = timer.active[reminder.id]
        assert when == WEDNESDAY_8AM
        assert exact is False


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_same_id_operations_end_in_last_issued_state(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        first = reminder.model_copy(update={"timeOfDay": time(7, 0)})
        second = reminder.model_copy(update={"timeOfDay": time(12, 0)})
        third = reminder.model_copy(update={"timeOfDay": time(21, 0)})

        await asyncio.gather(
            scheduler.rearm(first),
            scheduler.rearm(second),
            scheduler.disarm(reminder.id),
            scheduler.rearm(third),
        )

        assert timer.when(reminder.id) == datetime(2026, 10, 21, 21, 0, tzinfo=timezone.utc)
        assert timer.overwrites == 0
        assert list(timer.active) == [reminder.id]

    @pytest.mark.asyncio
    async def test_disarm_issued_last_wins(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)

        await asyncio.gather(scheduler.arm(reminder), scheduler.rearm(reminder), scheduler.disarm(reminder.id))

        assert timer.active == {}
        assert scheduler.armed_ids() == []


class TestRebuildAll:
    @pytest.mark.asyncio
    async def test_reconciles_timers_with_store(self, scheduler, store, timer):
        enabled = store.put(daysOfWeek=MON_WED_FRI)
        disabled = store.put(daysOfWeek=MON_WED_FRI, isEnabled=False)
        broken = store.put(daysOfWeek=[])
        # armed earlier, since removed from the store
        stale = store.put(daysOfWeek=[Weekday.SUNDAY])
        await scheduler.arm(stale)
        del store.records[stale.id]

        report = await scheduler.rebuild_all()

        assert report.armed == [enabled.id]
        assert report.disarmed == [disabled.id, stale.id]
        assert list(report.failed) == [broken.id]
        assert set(timer.active) == {enabled.id}
        assert scheduler.armed_ids() == [enabled.id]

    @pytest.mark.asyncio
    async def test_rebuild_twice_keeps_one_timer_per_reminder(self, scheduler, store, timer):
        first = store.put(daysOfWeek=MON_WED_FRI)
        second = store.put(timeOfDay=time(19, 0), daysOfWeek=[Weekday.TUESDAY])

        await scheduler.rebuild_all()
        await scheduler.rebuild_all()

        assert timer.overwrites == 0
        assert timer.when(first.id) == WEDNESDAY_8AM
        assert timer.when(second.id) == datetime(2026, 10, 20, 19, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_rebuild_reports_timer_failures(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        timer.fail_register = 3

        report = await scheduler.rebuild_all()

        assert report.armed == []
        assert reminder.id in report.failed

    @pytest.mark.asyncio
    async def test_store_listing_failure_propagates(self, scheduler, store):
        store.fail_list = True

        with pytest.raises(StoreError):
            await scheduler.rebuild_all()

    @pytest.mark.asyncio
    async def test_rebuild_uses_fresh_record(self, scheduler, store, timer):
        reminder = store.put(daysOfWeek=MON_WED_FRI)
        original_list = store.list

        async def list_then_disable():
            listed = await original_list()
            store.records[reminder.id] = reminder.model_copy(update={"isEnabled": False})
            return listed

        store.list = list_then_disable

        report = await scheduler.rebuild_all()

        assert report.disarmed == [reminder.id]
        assert timer.active == {}


class TestRestorePayload:
    @pytest.mark.asyncio
    async def test_restore_reregisters_previous_payload(self, scheduler, store, timer):
        reminder = store.put(label="Morning reading", daysOfWeek=MON_WED_FRI)
        await scheduler.arm(reminder)
        original = dict(timer.payload(reminder.id))
        timer.fail_register = 3

        with pytest.raises(SchedulingError):
            await scheduler.rearm(reminder.model_copy(update={"timeOfDay": time(20, 0)}))

        assert timer.payload(reminder.id) == original
        assert scheduler.armed_timer(reminder.id).payload.timeOfDay == time(8, 0)
