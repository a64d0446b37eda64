# vitalflow/core/errors.py


class ReminderEngineError(Exception):
    """Base class for reminder engine failures."""


class InvalidScheduleError(ReminderEngineError, ValueError):
    """A reminder's schedule cannot produce an occurrence (e.g. no weekdays)."""


class WakeupTimerError(ReminderEngineError):
    """The wake-up timer facility failed to register or cancel a timer."""


class ExactTimerDenied(WakeupTimerError):
    """The facility refuses exact-time registrations; inexact ones may still work."""


class SchedulingError(ReminderEngineError):
    """A timer operation failed after retries. Scheduling state was left as it was."""

    def __init__(self, reminder_id: int, message: str):
        super().__init__(f"reminder {reminder_id}: {message}")
        self.reminder_id = reminder_id


class StoreError(ReminderEngineError):
    """The reminder store could not be read or written."""


class DisplayDeliveryError(ReminderEngineError):
    """A display request could not be handed to the notification renderer."""
