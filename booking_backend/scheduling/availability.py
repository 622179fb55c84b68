"""Availability filtering of candidate slots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Sequence

from booking_backend.scheduling.time_of_day import (
    TimeOfDay,
    add_minutes,
    crosses_midnight,
    intervals_overlap,
)

OUTSIDE_HOURS = 'outside_hours'
BLOCKED = 'blocked'
BOOKED = 'booked'

_NON_BLOCKING_STATUSES = {'canceled'}


@dataclass(frozen=True)
class TimeSlot:
    start_time: TimeOfDay
    end_time: TimeOfDay
    is_available: bool
    source_availability_id: int | None = None
    rejection: str | None = None


def _status_value(item) -> str | None:
    status = getattr(item, 'status', None)
    return getattr(status, 'value', status)


def blocks_slot(item, day: date) -> bool:
    """Whether an existing appointment-like item occupies time on ``day``."""
    if _status_value(item) in _NON_BLOCKING_STATUSES:
        return False
    item_date = getattr(item, 'date', None)
    return item_date is None or item_date == day


def _overlaps_any(start: TimeOfDay, end: TimeOfDay, windows: Iterable) -> bool:
    return any(
        intervals_overlap(start, end, window.start_time, window.end_time)
        for window in windows
    )


def evaluate_slot(
    start: TimeOfDay | time | str,
    service_duration_minutes: int,
    day: date,
    existing_appointments: Sequence,
    blocked_ranges: Sequence,
    closes_at: TimeOfDay | time | str,
    source_availability_id: int | None = None,
) -> TimeSlot:
    start = TimeOfDay.coerce(start)
    if crosses_midnight(start, service_duration_minutes):
        raise ValueError(f'A {service_duration_minutes} minute slot at {start} runs past midnight.')
    slot_end = add_minutes(start, service_duration_minutes)

    def rejected(reason: str) -> TimeSlot:
        return TimeSlot(start, slot_end, False, source_availability_id, reason)

    if slot_end > TimeOfDay.coerce(closes_at):
        return rejected(OUTSIDE_HOURS)

    day_blocks = [
        blocked for blocked in blocked_ranges
        if getattr(blocked, 'date', None) is None or blocked.date == day
    ]
    if _overlaps_any(start, slot_end, day_blocks):
        return rejected(BLOCKED)

    booked = [item for item in existing_appointments if blocks_slot(item, day)]
    if _overlaps_any(start, slot_end, booked):
        return rejected(BOOKED)

    return TimeSlot(start, slot_end, True, source_availability_id)


def filter_slots(
    candidates: Iterable[TimeOfDay | time | str],
    service_duration_minutes: int,
    day: date,
    existing_appointments: Sequence,
    blocked_ranges: Sequence,
    closes_at: TimeOfDay | time | str,
    source_availability_id: int | None = None,
) -> list[TimeSlot]:
    """Mark each candidate start as available or not, in chronological order.

    Candidates whose window would run past midnight are left out. A slot is
    available when it stays within ``closes_at`` on the same day,
    does not intersect a blocked range for ``day``, and does not intersect a
    non-canceled existing appointment on ``day``.
    """
    if service_duration_minutes <= 0:
        raise ValueError('Service duration must be a positive number of minutes.')

    existing_appointments = list(existing_appointments)
    blocked_ranges = list(blocked_ranges)
    ordered = sorted(
        start for start in {TimeOfDay.coerce(candidate) for candidate in candidates}
        if not crosses_midnight(start, service_duration_minutes)
    )

    return [
        evaluate_slot(
            start,
            service_duration_minutes,
            day,
            existing_appointments,
            blocked_ranges,
            closes_at,
            source_availability_id,
        )
        for start in ordered
    ]


def available_slots(
    candidates: Iterable[TimeOfDay | time | str],
    service_duration_minutes: int,
    day: date,
    existing_appointments: Sequence,
    blocked_ranges: Sequence,
    closes_at: TimeOfDay | time | str,
    source_availability_id: int | None = None,
) -> list[TimeSlot]:
    slots = filter_slots(
        candidates,
        service_duration_minutes,
        day,
        existing_appointments,
        blocked_ranges,
        closes_at,
        source_availability_id,
    )
    return [slot for slot in slots if slot.is_available]
