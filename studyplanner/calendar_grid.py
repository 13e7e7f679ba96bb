"""
Month grid for the calendar view.

The grid always consists of complete Sunday-to-Saturday weeks:
- first cell: the Sunday on or before the 1st of the month
- last cell:  the Saturday on or after the last day of the month

That is 4, 5 or 6 rows depending on the month (a 28-day February starting on
a Sunday fits in exactly 4 weeks).
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterable

from studyplanner.model import CourseEvent

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def day_key(day: date) -> str:
    """Calendar-day key used in CourseEvent.date (YYYY-MM-DD)."""
    return day.isoformat()


def _days_since_sunday(day: date) -> int:
    # date.weekday(): Monday=0 ... Sunday=6
    return (day.weekday() + 1) % 7


def grid_days(reference: date) -> list[date]:
    first = reference.replace(day=1)
    last = reference.replace(day=calendar.monthrange(reference.year, reference.month)[1])

    start = first - timedelta(days=_days_since_sunday(first))
    end = last + timedelta(days=6 - _days_since_sunday(last))

    n = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(n)]


def month_grid(reference: date) -> list[list[date]]:
    """
    Return the display grid of the month containing `reference` as a list of weeks.
    """
    days = grid_days(reference)
    return [days[i : i + 7] for i in range(0, len(days), 7)]


def shift_month(reference: date, months: int) -> date:
    """
    Return the first day of the month `months` away from `reference`.
    """
    index = reference.year * 12 + (reference.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def events_on(events: Iterable[CourseEvent], day: date) -> list[CourseEvent]:
    """
    Events whose date equals the day's key, sorted by start time.
    """
    key = day_key(day)
    return sorted((e for e in events if e.date == key), key=lambda e: e.start_time)
