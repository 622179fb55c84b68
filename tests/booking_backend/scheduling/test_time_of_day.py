from datetime import time

import pytest

from booking_backend.scheduling.time_of_day import (
    TimeOfDay,
    add_minutes,
    crosses_midnight,
    intervals_overlap,
    is_after,
    is_between,
)


def test_parse_accepts_single_digit_hour() -> None:
    assert TimeOfDay.parse('9:05') == TimeOfDay(9 * 60 + 5)
    assert str(TimeOfDay.parse('9:05')) == '09:05'


@pytest.mark.parametrize('value', ['24:00', '12:60', '1200', '', 'ab:cd', '-1:00'])
def test_parse_rejects_invalid_strings(value: str) -> None:
    with pytest.raises(ValueError):
        TimeOfDay.parse(value)


@pytest.mark.parametrize('minutes', [-1, 24 * 60, 5000])
def test_constructor_rejects_out_of_range_minutes(minutes: int) -> None:
    with pytest.raises(ValueError):
        TimeOfDay(minutes)


def test_coerce_accepts_time_and_string() -> None:
    assert TimeOfDay.coerce(time(14, 30)) == TimeOfDay.coerce('14:30')
    assert TimeOfDay.coerce('14:30').to_time() == time(14, 30)


def test_add_minutes_wraps_past_midnight() -> None:
    assert add_minutes('23:50', 20) == TimeOfDay.parse('00:10')
    assert add_minutes('10:00', 90) == TimeOfDay.parse('11:30')


def test_crosses_midnight_treats_exact_midnight_end_as_crossing() -> None:
    assert crosses_midnight('23:30', 30) is True
    assert crosses_midnight('23:00', 59) is False


def test_is_after_and_is_between_are_inclusive_range_checks() -> None:
    assert is_after('10:01', '10:00') is True
    assert is_after('10:00', '10:00') is False
    assert is_between('09:00', '09:00', '12:00') is True
    assert is_between('12:00', '09:00', '12:00') is True
    assert is_between('12:01', '09:00', '12:00') is False


@pytest.mark.parametrize(
    ('a_start', 'a_end', 'b_start', 'b_end', 'expected'),
    [
        ('10:00', '10:30', '10:00', '10:30', True),
        ('10:00', '10:30', '10:15', '10:45', True),
        ('10:00', '10:30', '10:30', '11:00', False),
        ('09:30', '10:00', '10:00', '10:30', False),
        ('09:00', '12:00', '10:00', '10:30', True),
    ],
)
def test_intervals_overlap_uses_half_open_ranges(a_start, a_end, b_start, b_end, expected) -> None:
    assert intervals_overlap(a_start, a_end, b_start, b_end) is expected
