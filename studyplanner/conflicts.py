"""
Conflict detection.

Given a user's events, detect overlaps on the same date.
Overlap rule:
    start < other_end AND end > other_start
"""

from __future__ import annotations

from studyplanner.model import CourseEvent


def time_to_minutes(hhmm: str) -> int:
    """
    Convert 'HH:MM' to minutes since midnight.
    Raises ValueError for invalid formats.
    """
    parts = hhmm.strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time format: {hhmm!r}")
    h = int(parts[0])
    m = int(parts[1])
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"Invalid time value: {hhmm!r}")
    return h * 60 + m


def _overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and a_end > b_start


def find_conflicts(events: list[CourseEvent]) -> list[tuple[CourseEvent, CourseEvent]]:
    """
    Find overlapping event pairs (A,B), each pair appears once (i<j).
    Overlap only if same date AND time intervals overlap.
    """
    conflicts: list[tuple[CourseEvent, CourseEvent]] = []

    parsed: list[tuple[str, int, int, CourseEvent]] = []
    for ev in events:
        if not ev.date:
            continue
        try:
            start = time_to_minutes(ev.start_time)
            end = time_to_minutes(ev.end_time)
        except ValueError:
            continue
        # end <= start is stored as-is but never counts as a conflict
        if end <= start:
            continue
        parsed.append((ev.date, start, end, ev))

    # O(n^2) is fine for a personal schedule
    for i in range(len(parsed)):
        d1, s1, e1, ev1 = parsed[i]
        for j in range(i + 1, len(parsed)):
            d2, s2, e2, ev2 = parsed[j]
            if d1 != d2:
                continue
            if _overlaps(s1, e1, s2, e2):
                conflicts.append((ev1, ev2))

    return conflicts
