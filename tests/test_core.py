"""Tests for time helpers and the overlap test."""

from datetime import date

import pytest

from barbershop.core import (
    combine,
    describe_schedule,
    format_day,
    normalize_time,
    opening_window,
    overlaps,
    to_minutes,
)


def test_overlap_is_half_open():
    """Touching intervals do not overlap."""
    assert overlaps(600, 630, 630, 660) is False
    assert overlaps(630, 660, 600, 630) is False
    assert overlaps(600, 660, 630, 690) is True
    assert overlaps(600, 720, 630, 660) is True


def test_to_minutes_and_normalize():
    assert to_minutes("00:00") == 0
    assert to_minutes("14:30") == 870
    assert normalize_time("9:30") == "09:30"


@pytest.mark.parametrize("value", ["24:00", "12:60", "1230", "", "ab:cd"])
def test_to_minutes_rejects_bad_values(value):
    with pytest.raises(ValueError):
        to_minutes(value)


def test_opening_windows():
    # 2026-10-19 is a Monday
    assert opening_window(date(2026, 10, 19)) == (600, 1140)
    assert opening_window(date(2026, 10, 24)) == (600, 780)
    assert opening_window(date(2026, 10, 25)) is None
    assert describe_schedule(date(2026, 10, 25)) == "Sunday (closed)"


def test_combine_and_format_day():
    moment = combine(date(2026, 10, 21), "14:30")
    assert (moment.hour, moment.minute) == (14, 30)
    assert format_day(date(2026, 10, 21)) == "Wednesday, 21 October 2026"
