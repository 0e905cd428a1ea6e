# barbershop/core.py

import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from .data import OPENING_HOURS, WEEKDAY_NAMES

TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def overlaps(start_a, end_a, start_b, end_b) -> bool:
    """Half-open interval intersection: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def is_valid_time(value: str) -> bool:
    return bool(value) and TIME_RE.match(value) is not None


def to_minutes(value: str) -> int:
    """'HH:MM' -> minutes since midnight."""
    if not is_valid_time(value):
        raise ValueError(f"Invalid time format: {value!r}")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def normalize_time(value: str) -> str:
    """'9:30' -> '09:30'."""
    return format_minutes(to_minutes(value))


def combine(day: date, hhmm: str) -> datetime:
    """Scheduled moment of a booking: its date at its time-of-day (naive local time)."""
    return datetime.combine(day, time(0, 0)) + timedelta(minutes=to_minutes(hhmm))


def opening_window(day: date) -> Optional[Tuple[int, int]]:
    """[start, end) in minutes-of-day for the date's weekday, None when closed."""
    window = OPENING_HOURS.get(day.weekday())
    if window is None:
        return None
    return to_minutes(window[0]), to_minutes(window[1])


def describe_schedule(day: date) -> str:
    window = OPENING_HOURS.get(day.weekday())
    if window is None:
        return f"{WEEKDAY_NAMES[day.weekday()]} (closed)"
    return f"{WEEKDAY_NAMES[day.weekday()]} ({window[0]}-{window[1]})"


def format_day(day: date) -> str:
    """Wednesday, 21 October 2026"""
    return f"{WEEKDAY_NAMES[day.weekday()]}, {day.day} {day.strftime('%B')} {day.year}"
