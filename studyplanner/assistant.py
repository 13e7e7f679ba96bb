"""
Context for the external study assistant.

The assistant is a text-generation service outside this package. It gets a
system instruction with a JSON snapshot of the schedule and nothing else:
the snapshot is a fresh list of plain dicts, so the assistant has no handle
on the live event collection.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any

from studyplanner.model import CourseEvent


def build_schedule_context(events: list[CourseEvent]) -> list[dict[str, Any]]:
    return [
        {
            "title": e.title,
            "day": e.date,
            "time": f"{e.start_time}-{e.end_time}",
            "location": e.location or "not specified",
        }
        for e in sorted(events, key=lambda e: (e.date, e.start_time))
    ]


def build_system_instruction(username: str, events: list[CourseEvent], today: date) -> str:
    schedule_json = json.dumps(build_schedule_context(events), ensure_ascii=False)
    return (
        f'You are a helpful and cheerful student assistant for a student named "{username}".\n'
        f"Current date: {today.strftime('%A %d %B %Y')}.\n"
        "\n"
        "Here is the student's course schedule data (JSON):\n"
        f"{schedule_json}\n"
        "\n"
        "Rules:\n"
        '1. Use the schedule data to answer questions like "Do I have class today?", '
        '"What\'s next?", "Summarize my week".\n'
        "2. If the user asks about general knowledge, explain concepts clearly.\n"
        "3. Keep answers concise but helpful.\n"
        "4. If the schedule is empty, encourage them to rest or study.\n"
    )
