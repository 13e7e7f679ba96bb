"""
iCalendar (.ics) export.

We convert a user's events into a calendar file that can be imported into:
- Google Calendar
- Outlook
- Apple Calendar

Times are written as floating local times (no timezone), matching the
wall-clock HH:MM values stored in CourseEvent.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from studyplanner.model import COURSE_COLORS, CourseEvent

_COLOR_NAMES = {c.id: c.name for c in COURSE_COLORS}


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (very small subset, sufficient for our use).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _dt_local(date_yyyy_mm_dd: str, time_hh_mm: str) -> str:
    """
    Convert date + time to ICS local datetime string 'YYYYMMDDTHHMM00'.
    """
    dt = datetime.strptime(f"{date_yyyy_mm_dd} {time_hh_mm}", "%Y-%m-%d %H:%M")
    return dt.strftime("%Y%m%dT%H%M00")


def export_events_to_ics(events: list[CourseEvent], out_path: str | Path) -> int:
    """
    Export events to an .ics file. Returns number of exported events.

    Events with unparseable date/time are skipped. Link attachments are
    written as URL (first link) and ATTACH lines; embedded files are not exported.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append("PRODID:-//StudyPlanner//EN")
    lines.append("CALSCALE:GREGORIAN")

    dtstamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    count = 0
    for ev in sorted(events, key=lambda e: (e.date, e.start_time)):
        try:
            dtstart = _dt_local(ev.date, ev.start_time)
            dtend = _dt_local(ev.date, ev.end_time)
        except ValueError:
            continue

        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{_ics_escape(ev.id)}")
        lines.append(f"DTSTAMP:{dtstamp}")
        lines.append(f"DTSTART:{dtstart}")
        lines.append(f"DTEND:{dtend}")
        lines.append(f"SUMMARY:{_ics_escape(ev.title.strip() or 'StudyPlanner Event')}")
        if ev.location and ev.location.strip():
            lines.append(f"LOCATION:{_ics_escape(ev.location.strip())}")
        lines.append(f"CATEGORIES:{_ics_escape(_COLOR_NAMES.get(ev.color, ev.color))}")

        links = [a for a in (ev.attachments or []) if a.type == "link"]
        if links:
            lines.append(f"URL:{links[0].path}")
        for a in links:
            lines.append(f"ATTACH:{a.path}")

        lines.append("END:VEVENT")
        count += 1

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    out.write_text("\r\n".join(lines) + "\r\n", encoding="utf-8", newline="")
    return count
