"""
CLI (Command Line Interface).

This module provides quick terminal commands, e.g.:

    studyplanner login <username>
    studyplanner add "Calc I" --date 2024-03-05 --start 09:00 --end 10:30 --color red
    studyplanner list [--date YYYY-MM-DD]
    studyplanner edit <event_id> --title "Calculus I"
    studyplanner delete <event_id>
    studyplanner month [YYYY-MM]
    studyplanner conflicts
    studyplanner export <file.ics>
    studyplanner context
    studyplanner interactive

The logged-in user is remembered between invocations (session marker in the
local store) until `studyplanner logout`.

Note:
- The interactive UI lives in studyplanner/interactive.py
- This CLI prints plain text (no rich formatting)
- Exit codes: 0 ok, 1 user-actionable error, 2 usage error
"""

from __future__ import annotations

import argparse
import dataclasses
import getpass
import logging
from datetime import date, datetime
from typing import Optional

from studyplanner.assistant import build_system_instruction
from studyplanner.calendar_grid import WEEKDAY_NAMES, day_key, events_on, month_grid
from studyplanner.config import load_settings
from studyplanner.conflicts import find_conflicts, time_to_minutes
from studyplanner.errors import EventNotFound, InvalidCredentials, SessionNotReady, StorageFull
from studyplanner.export_ics import export_events_to_ics
from studyplanner.model import COLOR_IDS, DEFAULT_COLOR, Attachment, CourseEvent, new_id
from studyplanner.session import SessionController
from studyplanner.storage import StorageService


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def _date_arg(text: str) -> str:
    try:
        return date.fromisoformat(text.strip()).isoformat()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {text!r} (expected YYYY-MM-DD)")


def _time_arg(text: str) -> str:
    try:
        minutes = time_to_minutes(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid time {text!r} (expected HH:MM)")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _month_arg(text: str) -> date:
    try:
        return datetime.strptime(text.strip(), "%Y-%m").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid month {text!r} (expected YYYY-MM)")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def event_line(ev: CourseEvent) -> str:
    bits = [f"{ev.date} {ev.start_time}-{ev.end_time}", ev.title]
    if ev.location:
        bits.append(f"@ {ev.location}")
    bits.append(f"[{ev.color}]")
    if ev.attachments:
        bits.append(f"{len(ev.attachments)} attachment(s)")
    bits.append(ev.id)
    return " | ".join(bits)


def _attachments_from_args(links: list[str], files: list[str]) -> list[Attachment]:
    out: list[Attachment] = []
    for link in links:
        # "URL" or "NAME=URL"
        name, sep, url = link.partition("=")
        out.append(Attachment.link(url, name) if sep and url else Attachment.link(link))
    for path in files:
        out.append(Attachment.from_file(path))
    return out


def _require_session(controller: SessionController) -> Optional[str]:
    user = controller.restore()
    if user is None:
        print("Not logged in. Run: studyplanner login <username>")
        return None
    return user.username


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_login(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    username = (args.username or "").strip()
    if not username:
        print("Please provide a username.")
        return 1

    pin = args.pin if args.pin is not None else getpass.getpass("PIN: ")
    if not pin:
        print("Please provide a PIN.")
        return 1

    try:
        user = controller.login(username, pin)
    except InvalidCredentials:
        print("Invalid PIN.")
        return 1

    mode = "remote sync on" if service.remote_enabled else "local only"
    print(f"Logged in as {user.username} ({len(controller.events)} events, {mode})")
    return 0


def _cmd_logout(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    user = service.restore_session()
    controller.logout()
    print(f"Logged out: {user.username}" if user else "Not logged in.")
    return 0


def _cmd_whoami(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    user = service.restore_session()
    if user is None:
        print("Not logged in.")
        return 1
    print(f"{user.username} (last login {user.last_login or 'unknown'})")
    return 0


def _cmd_list(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    if _require_session(controller) is None:
        return 1

    if args.date:
        events = events_on(controller.events, date.fromisoformat(args.date))
    else:
        events = sorted(controller.events, key=lambda e: (e.date, e.start_time))

    if not events:
        print("No events.")
        return 0
    for ev in events:
        print(event_line(ev))
    return 0


def _cmd_add(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    if _require_session(controller) is None:
        return 1

    title = (args.title or "").strip()
    if not title:
        print("Please provide a title.")
        return 1

    attachments = _attachments_from_args(args.link or [], args.file or [])
    event = CourseEvent(
        id=new_id(),
        title=title,
        date=args.date,
        start_time=args.start,
        end_time=args.end,
        color=args.color,
        location=args.location,
        attachments=attachments,
    )
    created = controller.create(event)
    print(f"Added: {event_line(created)}")
    return 0


def _cmd_edit(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    if _require_session(controller) is None:
        return 1

    current = controller.begin_edit(args.event_id)

    attachments = list(current.attachments or [])
    if args.remove_attachment:
        drop = set(args.remove_attachment)
        attachments = [a for a in attachments if a.id not in drop]
    attachments.extend(_attachments_from_args(args.link or [], args.file or []))

    changes = {
        "title": args.title,
        "date": args.date,
        "start_time": args.start,
        "end_time": args.end,
        "color": args.color,
        "location": args.location,
    }
    updated = dataclasses.replace(
        current,
        attachments=attachments if (attachments or current.attachments is not None) else None,
        **{k: v for k, v in changes.items() if v is not None},
    )
    controller.update(updated)
    print(f"Updated: {event_line(updated)}")
    return 0


def _cmd_delete(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    if _require_session(controller) is None:
        return 1

    if controller.delete(args.event_id):
        print(f"Deleted: {args.event_id}")
    else:
        print(f"No event with id {args.event_id} (nothing changed).")
    return 0


def _cmd_month(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    if _require_session(controller) is None:
        return 1

    reference = args.month or date.today()
    events = controller.events
    counts: dict[str, int] = {}
    for ev in events:
        counts[ev.date] = counts.get(ev.date, 0) + 1

    print(reference.strftime("%B %Y").center(7 * 6))
    print(" ".join(name.rjust(5) for name in WEEKDAY_NAMES))
    for week in month_grid(reference):
        cells = []
        for day in week:
            n = counts.get(day_key(day), 0)
            label = f"{day.day:2d}" if day.month == reference.month else "  ."
            cells.append((label + (f"*{n}" if n else "")).rjust(5))
        print(" ".join(cells))
    return 0


def _cmd_conflicts(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    """
    Print all detected conflicts among the user's events.
    """
    if _require_session(controller) is None:
        return 1

    confs = find_conflicts(controller.events)
    if not confs:
        print("No conflicts found.")
        return 0

    confs_sorted = sorted(confs, key=lambda pair: (pair[0].date, pair[0].start_time))
    print(f"Conflicts found: {len(confs_sorted)}")
    for a, b in confs_sorted:
        print(f"- {a.date} {a.start_time}-{a.end_time} {a.title}  <->  {b.start_time}-{b.end_time} {b.title}")
    return 0


def _cmd_export(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    """
    Export the user's events into an iCalendar (.ics) file.
    """
    if _require_session(controller) is None:
        return 1

    events = controller.events
    if not events:
        print("No events to export.")
        return 0

    out_path = (args.out or "").strip()
    if not out_path:
        print("Please provide output .ics path.")
        return 1

    n = export_events_to_ics(events, out_path)
    print(f"Exported {n} events to: {out_path}")
    return 0


def _cmd_context(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    """
    Print the assistant's system instruction (for piping into the assistant).
    """
    username = _require_session(controller)
    if username is None:
        return 1
    print(build_system_instruction(username, controller.events, date.today()))
    return 0


def _cmd_interactive(args: argparse.Namespace, service: StorageService, controller: SessionController) -> int:
    from studyplanner.interactive import run_interactive

    run_interactive(controller)
    return 0


COMMANDS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "whoami": _cmd_whoami,
    "list": _cmd_list,
    "add": _cmd_add,
    "edit": _cmd_edit,
    "delete": _cmd_delete,
    "month": _cmd_month,
    "conflicts": _cmd_conflicts,
    "export": _cmd_export,
    "context": _cmd_context,
    "interactive": _cmd_interactive,
}


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="studyplanner", description="StudyPlanner CLI")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--env-file", type=str, default=None, help="Load settings from this .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    p_login = sub.add_parser("login", help="Log in (first login registers the user)")
    p_login.add_argument("username", type=str, help="Username")
    p_login.add_argument("--pin", type=str, default=None, help="PIN (prompted if omitted)")

    sub.add_parser("logout", help="Forget the current session")
    sub.add_parser("whoami", help="Show the current user")

    p_list = sub.add_parser("list", help="List events")
    p_list.add_argument("--date", type=_date_arg, default=None, help="Only this day (YYYY-MM-DD)")

    p_add = sub.add_parser("add", help="Add an event")
    p_add.add_argument("title", type=str, help="Course / activity title")
    p_add.add_argument("--date", type=_date_arg, default=date.today().isoformat(), help="Day (YYYY-MM-DD)")
    p_add.add_argument("--start", type=_time_arg, default="09:00", help="Start time (HH:MM)")
    p_add.add_argument("--end", type=_time_arg, default="11:00", help="End time (HH:MM)")
    p_add.add_argument("--color", choices=COLOR_IDS, default=DEFAULT_COLOR, help="Colour tag")
    p_add.add_argument("--location", type=str, default=None, help="Room / place")
    p_add.add_argument("--link", action="append", help="Attach a link (URL or NAME=URL)")
    p_add.add_argument("--file", action="append", help="Attach a file (max 1.5 MiB)")

    p_edit = sub.add_parser("edit", help="Edit an event")
    p_edit.add_argument("event_id", type=str, help="Event id (see 'list')")
    p_edit.add_argument("--title", type=str, default=None)
    p_edit.add_argument("--date", type=_date_arg, default=None)
    p_edit.add_argument("--start", type=_time_arg, default=None)
    p_edit.add_argument("--end", type=_time_arg, default=None)
    p_edit.add_argument("--color", choices=COLOR_IDS, default=None)
    p_edit.add_argument("--location", type=str, default=None)
    p_edit.add_argument("--link", action="append", help="Attach a link (URL or NAME=URL)")
    p_edit.add_argument("--file", action="append", help="Attach a file (max 1.5 MiB)")
    p_edit.add_argument("--remove-attachment", action="append", help="Attachment id to remove")

    p_delete = sub.add_parser("delete", help="Delete an event")
    p_delete.add_argument("event_id", type=str, help="Event id (see 'list')")

    p_month = sub.add_parser("month", help="Show a month grid with event counts")
    p_month.add_argument("month", type=_month_arg, nargs="?", default=None, help="Month (YYYY-MM)")

    sub.add_parser("conflicts", help="Show overlapping events")

    p_export = sub.add_parser("export", help="Export events to .ics")
    p_export.add_argument("out", type=str, help="Output file path (e.g. out.ics)")

    sub.add_parser("context", help="Print the assistant system instruction")
    sub.add_parser("interactive", help="Interactive menu mode")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.env_file)
    service = StorageService.from_settings(settings)
    controller = SessionController(service)

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        code = handler(args, service, controller)
    except StorageFull as e:
        print(f"Error: {e}")
        code = 1
    except EventNotFound as e:
        print(f"Error: {e}")
        code = 1
    except SessionNotReady as e:
        print(f"Error: {e}")
        code = 1
    except (OSError, ValueError) as e:
        # unreadable attachment file, empty link, ...
        print(f"Error: {e}")
        code = 1
    finally:
        # flushes pending remote pushes before the process exits
        service.close()

    raise SystemExit(code)
