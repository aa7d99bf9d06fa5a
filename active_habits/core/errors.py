from __future__ import annotations

from datetime import date


class HabitEngineError(Exception):
    """Base class for every error raised by the tracking engine."""


class HabitValidationError(HabitEngineError):
    pass


class HabitNotFoundError(HabitEngineError):
    def __init__(self, habit_id: str) -> None:
        super().__init__(f"Habit not found: {habit_id}")
        self.habit_id = habit_id


class HabitDayNotFoundError(HabitEngineError):
    def __init__(self, habit_id: str, day: date) -> None:
        super().__init__(f"Habit {habit_id} does not track {day.isoformat()}")
        self.habit_id = habit_id
        self.day = day


class InvalidRangeError(HabitEngineError):
    def __init__(self, from_date: date, to_date: date) -> None:
        super().__init__(f"Invalid range: {from_date.isoformat()} > {to_date.isoformat()}")
        self.from_date = from_date
        self.to_date = to_date


class FutureDayError(HabitEngineError):
    def __init__(self, day: date, today: date) -> None:
        super().__init__(f"Cannot mark {day.isoformat()} as executed before it happens (today={today.isoformat()})")
        self.day = day
        self.today = today


class BackfillDisabledError(HabitEngineError):
    def __init__(self, day: date, today: date) -> None:
        super().__init__(f"Backfilling {day.isoformat()} is disabled (today={today.isoformat()})")
        self.day = day
        self.today = today


class ConsistencyError(HabitEngineError):
    """The store holds duplicates for a key that must be unique."""


class DispatcherError(HabitEngineError):
    pass


class AuthorizationError(DispatcherError):
    pass


class SchedulingError(DispatcherError):
    pass


class DispatcherNotFoundError(DispatcherError):
    def __init__(self, dispatcher_id: str) -> None:
        super().__init__(f"Dispatcher has no notification {dispatcher_id}")
        self.dispatcher_id = dispatcher_id
