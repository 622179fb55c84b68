"""Wall-clock time-of-day arithmetic.

Times are provider-local values with minute precision. No timezone conversion
happens here; only the appointment date is a calendar value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import time
from functools import total_ordering

MINUTES_PER_DAY = 24 * 60

_HHMM_PATTERN = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')


@total_ordering
@dataclass(frozen=True)
class TimeOfDay:
    """Minutes since midnight, restricted to 00:00-23:59."""

    minutes: int

    def __post_init__(self) -> None:
        if not isinstance(self.minutes, int) or isinstance(self.minutes, bool):
            raise ValueError(f'Minutes must be an integer, got {self.minutes!r}.')
        if not 0 <= self.minutes < MINUTES_PER_DAY:
            raise ValueError(f'Time of day out of range: {self.minutes} minutes.')

    @classmethod
    def parse(cls, value: str) -> TimeOfDay:
        match = _HHMM_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(f'Time must use the HH:MM format, got {value!r}.')
        return cls(int(match.group(1)) * 60 + int(match.group(2)))

    @classmethod
    def from_time(cls, value: time) -> TimeOfDay:
        return cls(value.hour * 60 + value.minute)

    @classmethod
    def coerce(cls, value: TimeOfDay | time | str) -> TimeOfDay:
        if isinstance(value, TimeOfDay):
            return value
        if isinstance(value, time):
            return cls.from_time(value)
        if isinstance(value, str):
            return cls.parse(value)
        raise ValueError(f'Cannot interpret {value!r} as a time of day.')

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    def __lt__(self, other: TimeOfDay) -> bool:
        if not isinstance(other, TimeOfDay):
            return NotImplemented
        return self.minutes < other.minutes

    def __str__(self) -> str:
        return f'{self.hour:02d}:{self.minute:02d}'


def add_minutes(value: TimeOfDay | time | str, minutes: int) -> TimeOfDay:
    """Shift a time of day, wrapping around midnight (23:50 + 20 -> 00:10)."""
    start = TimeOfDay.coerce(value)
    return TimeOfDay((start.minutes + minutes) % MINUTES_PER_DAY)


def crosses_midnight(value: TimeOfDay | time | str, minutes: int) -> bool:
    # A window ending exactly at 24:00 cannot be represented as a same-day end time.
    return TimeOfDay.coerce(value).minutes + minutes >= MINUTES_PER_DAY


def is_after(a: TimeOfDay | time | str, b: TimeOfDay | time | str) -> bool:
    return TimeOfDay.coerce(a) > TimeOfDay.coerce(b)


def is_between(
    value: TimeOfDay | time | str,
    start: TimeOfDay | time | str,
    end: TimeOfDay | time | str,
) -> bool:
    """Inclusive range check."""
    return TimeOfDay.coerce(start) <= TimeOfDay.coerce(value) <= TimeOfDay.coerce(end)


def intervals_overlap(
    a_start: TimeOfDay | time | str,
    a_end: TimeOfDay | time | str,
    b_start: TimeOfDay | time | str,
    b_end: TimeOfDay | time | str,
) -> bool:
    """Half-open overlap test: [a1, a2) and [b1, b2) overlap iff a1 < b2 and b1 < a2."""
    return (
        TimeOfDay.coerce(a_start) < TimeOfDay.coerce(b_end)
        and TimeOfDay.coerce(b_start) < TimeOfDay.coerce(a_end)
    )
