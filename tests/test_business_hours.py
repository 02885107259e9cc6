from datetime import datetime

import pytest

from clinic_core.business_hours import ceiling_end_hour, is_within_business_hours
from clinic_core.timespan import TimeSpan


def span(hour, minute, duration):
    return TimeSpan(datetime(2026, 3, 2, hour, minute), duration)


@pytest.mark.parametrize(
    "start, duration, expected",
    [
        ((9, 0), 60, True),
        ((8, 0), 60, True),  # starts exactly at opening
        ((17, 0), 60, True),  # ends exactly at 18:00
        ((17, 30), 60, False),  # ceiling end hour 19
        ((17, 1), 60, False),  # ends 18:01
        ((7, 59), 30, False),
        ((7, 0), 120, False),
        ((12, 15), 45, True),
    ],
)
def test_default_hours(start, duration, expected):
    assert is_within_business_hours(span(*start, duration), 8, 18) is expected


def test_defaults_are_8_to_18():
    assert is_within_business_hours(span(8, 0, 600))
    assert not is_within_business_hours(span(8, 0, 601))


def test_custom_hours():
    assert is_within_business_hours(span(10, 0, 60), 10, 16)
    assert not is_within_business_hours(span(9, 0, 60), 10, 16)
    assert not is_within_business_hours(span(15, 30, 60), 10, 16)


def test_ceiling_end_hour():
    assert ceiling_end_hour(span(9, 0, 60)) == 10
    assert ceiling_end_hour(span(9, 0, 61)) == 11
    assert ceiling_end_hour(span(17, 30, 60)) == 19


def test_seconds_past_the_hour_round_up():
    s = TimeSpan(datetime(2026, 3, 2, 16, 0, 30), 60)
    assert ceiling_end_hour(s) == 18
    assert not is_within_business_hours(TimeSpan(datetime(2026, 3, 2, 17, 0, 30), 60), 8, 18)


def test_span_running_past_midnight_does_not_wrap():
    overnight = span(17, 0, 8 * 60)  # ends 01:00 next day
    assert ceiling_end_hour(overnight) == 25
    assert not is_within_business_hours(overnight, 8, 18)
