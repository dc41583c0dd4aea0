"""
utils/timeslots.py

HH:MM and YYYY-MM-DD helpers shared by seller store hours and delivery
partner availability.
"""
from datetime import date
from typing import Iterable

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def check_interval(start: str, end: str) -> None:
    if to_minutes(end) <= to_minutes(start):
        raise ValueError(f"{end} must be after {start}; overnight intervals are not supported")


def check_no_overlap(intervals: Iterable) -> list:
    """Sort intervals by start and reject any that overlap. Items need `start` and `end`."""
    ordered = sorted(intervals, key=lambda iv: to_minutes(iv.start))
    for previous, current in zip(ordered, ordered[1:]):
        if to_minutes(current.start) < to_minutes(previous.end):
            raise ValueError(f"Intervals {previous.start}-{previous.end} and {current.start}-{current.end} overlap")
    return ordered


def check_calendar_date(value: str) -> str:
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{value} is not a valid date") from None
    return value
