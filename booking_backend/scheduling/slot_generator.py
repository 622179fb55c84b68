"""Candidate slot generation from a provider's working-hours template."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, time

from booking_backend.scheduling.time_of_day import MINUTES_PER_DAY, TimeOfDay


@dataclass(frozen=True)
class BlockedRange:
    start_time: TimeOfDay
    end_time: TimeOfDay
    date: date | None = None  # None applies to every day
    id: int | None = None

    def applies_to(self, day: date) -> bool:
        return self.date is None or self.date == day


@dataclass(frozen=True)
class ProviderSchedule:
    start_time: TimeOfDay
    end_time: TimeOfDay
    working_days: frozenset[int]
    slot_interval_minutes: int
    blocked_ranges: tuple[BlockedRange, ...] = field(default_factory=tuple)
    id: int | None = None

    def __post_init__(self) -> None:
        if self.slot_interval_minutes <= 0:
            raise ValueError('Slot interval must be a positive number of minutes.')
        if not self.start_time < self.end_time:
            raise ValueError('Schedule start time must be before its end time.')
        invalid_days = {day for day in self.working_days if not 0 <= day <= 6}
        if invalid_days:
            raise ValueError(f'Working days must be between 0 and 6, got {sorted(invalid_days)}.')

    @classmethod
    def build(
        cls,
        start_time: TimeOfDay | time | str,
        end_time: TimeOfDay | time | str,
        working_days,
        slot_interval_minutes: int,
        blocked_ranges=(),
        id: int | None = None,
    ) -> ProviderSchedule:
        return cls(
            start_time=TimeOfDay.coerce(start_time),
            end_time=TimeOfDay.coerce(end_time),
            working_days=frozenset(working_days),
            slot_interval_minutes=slot_interval_minutes,
            blocked_ranges=tuple(blocked_ranges),
            id=id,
        )

    def works_on(self, day: date) -> bool:
        return weekday_number(day) in self.working_days

    def blocked_on(self, day: date) -> list[BlockedRange]:
        return [blocked for blocked in self.blocked_ranges if blocked.applies_to(day)]


def weekday_number(day: date) -> int:
    """Weekday with 0 = Sunday through 6 = Saturday."""
    return (day.weekday() + 1) % 7


@dataclass(frozen=True)
class HoursOverride:
    """Hours replacing the weekly template on one weekday or one calendar date.

    With ``is_available`` false the provider does not work at all on the
    matching days. ``slot_interval_minutes`` of None keeps the template interval.
    """
    start_time: TimeOfDay | None = None
    end_time: TimeOfDay | None = None
    day_of_week: int | None = None
    date: date | None = None
    slot_interval_minutes: int | None = None
    is_available: bool = True
    id: int | None = None

    def __post_init__(self) -> None:
        if (self.day_of_week is None) == (self.date is None):
            raise ValueError('An hours override needs either a weekday or a date, not both.')
        if self.day_of_week is not None and not 0 <= self.day_of_week <= 6:
            raise ValueError(f'Working days must be between 0 and 6, got [{self.day_of_week}].')
        if self.slot_interval_minutes is not None and self.slot_interval_minutes <= 0:
            raise ValueError('Slot interval must be a positive number of minutes.')
        if not self.is_available:
            return
        if self.start_time is None or self.end_time is None:
            raise ValueError('Working hours need both a start and an end time.')
        if not self.start_time < self.end_time:
            raise ValueError('Schedule start time must be before its end time.')

    @classmethod
    def build(
        cls,
        start_time: TimeOfDay | time | str | None = None,
        end_time: TimeOfDay | time | str | None = None,
        day_of_week: int | None = None,
        date: date | None = None,
        slot_interval_minutes: int | None = None,
        is_available: bool = True,
        id: int | None = None,
    ) -> HoursOverride:
        return cls(
            start_time=None if start_time is None else TimeOfDay.coerce(start_time),
            end_time=None if end_time is None else TimeOfDay.coerce(end_time),
            day_of_week=day_of_week,
            date=date,
            slot_interval_minutes=slot_interval_minutes,
            is_available=is_available,
            id=id,
        )

    def applies_to(self, day: date) -> bool:
        if self.date is not None:
            return self.date == day
        return self.day_of_week == weekday_number(day)


def resolve_schedule(schedule: ProviderSchedule, overrides, day: date) -> ProviderSchedule:
    """Return the template in force on ``day``.

    A date override wins over a weekday override, which wins over the weekly
    template. The returned template carries the id of the override it used.
    """
    matching = [override for override in overrides if override.applies_to(day)]
    if not matching:
        return schedule

    override = min(matching, key=lambda item: item.date is None)
    weekday = weekday_number(day)
    if not override.is_available:
        return replace(schedule, working_days=schedule.working_days - {weekday}, id=override.id)

    interval = override.slot_interval_minutes
    return replace(
        schedule,
        start_time=override.start_time,
        end_time=override.end_time,
        working_days=schedule.working_days | {weekday},
        slot_interval_minutes=schedule.slot_interval_minutes if interval is None else interval,
        id=override.id,
    )


def generate_slot_starts(
    schedule: ProviderSchedule,
    day: date,
    service_duration_minutes: int | None = None,
) -> list[TimeOfDay]:
    """Return the candidate start times for ``day``.

    The last start is the latest ``t`` on the interval grid such that
    ``t + duration <= schedule.end_time``. The duration defaults to the slot
    interval. Non-working days produce an empty list.
    """
    if not schedule.works_on(day):
        return []

    duration = schedule.slot_interval_minutes if service_duration_minutes is None else service_duration_minutes
    if duration <= 0:
        raise ValueError('Service duration must be a positive number of minutes.')

    starts: list[TimeOfDay] = []
    current = schedule.start_time.minutes
    while current + duration <= schedule.end_time.minutes and current < MINUTES_PER_DAY:
        starts.append(TimeOfDay(current))
        current += schedule.slot_interval_minutes

    return starts


def _start_priority(start: TimeOfDay) -> int:
    minute = start.minute
    if minute == 0:
        return 1
    if minute == 30:
        return 2
    if minute in (15, 45):
        return 3
    if minute % 5 == 0:
        return 4
    return 5


def prioritize_slots(slots):
    """Order slots so round start times come first, chronological within each class."""
    return sorted(slots, key=lambda slot: (_start_priority(_start_of(slot)), _start_of(slot)))


def _start_of(slot) -> TimeOfDay:
    if isinstance(slot, TimeOfDay):
        return slot
    return TimeOfDay.coerce(slot.start_time)
