# vitalflow/services/occurrence_service.py
from typing import Iterable, Optional
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from tzlocal import get_localzone

from vitalflow.core.config import settings
from vitalflow.core.errors import InvalidScheduleError
from vitalflow.models.reminder_models import Weekday


def reminder_timezone(name: Optional[str] = None):
    name = name or settings.REMINDER_TIMEZONE
    if name:
        return ZoneInfo(name)
    return get_localzone()


def local_now() -> datetime:
    """Current aware wall-clock time in the reminder time zone."""
    return datetime.now(reminder_timezone())


def compute_next(time_of_day: time, days_of_week: Iterable[int], now: datetime) -> datetime:
    """
    Return the earliest instant strictly after `now` that falls on one of
    `days_of_week` at `time_of_day`. The result carries `now`'s tzinfo.

    A slot on today's weekday only counts if it is still ahead of `now`;
    otherwise that weekday is a week away.
    """
    try:
        days = {Weekday(d) for d in days_of_week}
    except ValueError as e:
        raise InvalidScheduleError(f"invalid weekday in schedule: {e}") from e
    if not days:
        raise InvalidScheduleError("daysOfWeek must contain at least one weekday")

    time_of_day = time_of_day.replace(tzinfo=None)
    today = now.date()
    today_slot = datetime.combine(today, time_of_day, tzinfo=now.tzinfo)

    offsets = []
    for day in days:
        days_until = (day - now.weekday() + 7) % 7
        if days_until == 0 and not today_slot > now:
            days_until = 7
        offsets.append(days_until)

    target = today + timedelta(days=min(offsets))
    return datetime.combine(target, time_of_day, tzinfo=now.tzinfo)


def format_repeat_text(days_of_week: Iterable[int]) -> str:
    days = sorted({Weekday(d) for d in days_of_week})
    if not days:
        return "Never"
    if len(days) == 7:
        return "Every day"
    if days == [Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY]:
        return "Weekdays"
    if days == [Weekday.SATURDAY, Weekday.SUNDAY]:
        return "Weekends"
    return ", ".join(day.short_name for day in days)


def format_time_of_day(value: time) -> str:
    return value.strftime("%I:%M %p")
