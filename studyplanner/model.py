"""
Central data model definitions used across the project.

This module defines the canonical structure of User, CourseEvent and
Attachment objects so that:
- the storage tiers (local files, remote table) share the same field names
- a collection loaded from disk serializes back to the exact same JSON
- the CLI, the interactive mode and the exporters agree on one shape

The JSON keys are camelCase (startTime, endTime, lastLogin) because that is
the format already stored in existing user data.
"""

from __future__ import annotations

import base64
import mimetypes
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


# 1.5 MiB of raw file content per attachment
MAX_FILE_ATTACHMENT_BYTES = int(1.5 * 1024 * 1024)

ATTACHMENT_TYPES = ("file", "link")


@dataclass(frozen=True)
class ColorOption:
    id: str
    name: str


COURSE_COLORS: list[ColorOption] = [
    ColorOption("red", "Red (core course)"),
    ColorOption("blue", "Blue (lab / practical)"),
    ColorOption("green", "Green (elective)"),
    ColorOption("orange", "Orange (activity)"),
    ColorOption("purple", "Purple (language)"),
    ColorOption("gray", "Gray (exam / other)"),
]

COLOR_IDS: list[str] = [c.id for c in COURSE_COLORS]
DEFAULT_COLOR = COLOR_IDS[0]


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


@dataclass
class User:
    """
    An authenticated user. The username is the identity; there is no numeric id.
    """

    username: str
    last_login: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"username": self.username}
        if self.last_login is not None:
            data["lastLogin"] = self.last_login
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        username = data.get("username")
        if not isinstance(username, str) or not username:
            raise ValueError("User record without username")
        return cls(username=username, last_login=data.get("lastLogin"))


@dataclass
class Attachment:
    """
    A file or link attached to one CourseEvent.

    `path` holds either a URL (links) or a self-contained data: URL (files).
    `size` is only set for files.
    """

    id: str
    name: str
    type: str
    path: str
    size: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "name": self.name, "type": self.type, "path": self.path}
        if self.size is not None:
            data["size"] = self.size
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Attachment":
        kind = data.get("type")
        if kind not in ATTACHMENT_TYPES:
            raise ValueError(f"Invalid attachment type: {kind!r}")
        size = data.get("size")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            type=kind,
            path=str(data["path"]),
            size=int(size) if size is not None else None,
        )

    @classmethod
    def link(cls, url: str, name: str = "") -> "Attachment":
        """
        Create a link attachment. A URL without http(s) scheme gets https://.
        """
        url = url.strip()
        if not url:
            raise ValueError("Link URL must not be empty")
        if not re.match(r"^https?://", url, flags=re.IGNORECASE):
            url = "https://" + url
        return cls(id=new_id(), name=name.strip() or url, type="link", path=url)

    @classmethod
    def from_file(cls, path: str | Path) -> "Attachment":
        """
        Read a file and embed it as a base64 data: URL.

        Files above MAX_FILE_ATTACHMENT_BYTES are rejected; large documents
        should be attached as links instead.
        """
        p = Path(path)
        raw = p.read_bytes()
        if len(raw) > MAX_FILE_ATTACHMENT_BYTES:
            raise ValueError(
                f"{p.name} is {len(raw)} bytes; files are limited to {MAX_FILE_ATTACHMENT_BYTES} bytes"
            )
        mime = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        payload = base64.b64encode(raw).decode("ascii")
        return cls(
            id=new_id(),
            name=p.name,
            type="file",
            path=f"data:{mime};base64,{payload}",
            size=len(raw),
        )


@dataclass
class CourseEvent:
    """
    One calendar-bound entry of a user's schedule.

    date is a calendar-day key (YYYY-MM-DD), start_time/end_time are HH:MM
    wall-clock strings. start_time <= end_time is not checked here.
    """

    id: str
    title: str
    date: str
    start_time: str
    end_time: str
    color: str = DEFAULT_COLOR
    location: Optional[str] = None
    attachments: Optional[list[Attachment]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "title": self.title}
        if self.location is not None:
            data["location"] = self.location
        data["date"] = self.date
        data["startTime"] = self.start_time
        data["endTime"] = self.end_time
        data["color"] = self.color
        if self.attachments is not None:
            data["attachments"] = [a.to_dict() for a in self.attachments]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CourseEvent":
        attachments_raw = data.get("attachments")
        attachments = None
        if attachments_raw is not None:
            if not isinstance(attachments_raw, list):
                raise ValueError("attachments must be a list")
            if not all(isinstance(a, dict) for a in attachments_raw):
                raise ValueError("attachments must be objects")
            attachments = [Attachment.from_dict(a) for a in attachments_raw]
        location = data.get("location")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            date=str(data["date"]),
            start_time=str(data["startTime"]),
            end_time=str(data["endTime"]),
            color=str(data.get("color") or DEFAULT_COLOR),
            location=str(location) if location is not None else None,
            attachments=attachments,
        )


def events_to_dicts(events: list[CourseEvent]) -> list[dict[str, Any]]:
    return [e.to_dict() for e in events]


def events_from_dicts(items: list[Any]) -> list[CourseEvent]:
    """
    Decode a stored collection. Raises ValueError on a malformed payload so the
    caller decides whether to fall back; a half-decoded collection is never returned.
    """
    if not isinstance(items, list):
        raise ValueError("Event collection must be a list")
    out: list[CourseEvent] = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError(f"Invalid event record: {item!r}")
        try:
            out.append(CourseEvent.from_dict(item))
        except KeyError as e:
            raise ValueError(f"Event record missing field {e}") from e
        except (TypeError, AttributeError) as e:
            raise ValueError(f"Invalid event record: {e}") from e
    return out
