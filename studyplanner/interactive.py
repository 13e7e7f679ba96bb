from __future__ import annotations

import dataclasses
from datetime import date
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from studyplanner.calendar_grid import WEEKDAY_NAMES, day_key, month_grid, shift_month
from studyplanner.conflicts import find_conflicts, time_to_minutes
from studyplanner.errors import InvalidCredentials, StorageFull
from studyplanner.export_ics import export_events_to_ics
from studyplanner.model import COURSE_COLORS, DEFAULT_COLOR, Attachment, CourseEvent, new_id
from studyplanner.session import SessionController
from studyplanner.sync import SyncResult

console = Console()

# rich colour per palette id
_STYLE = {"red": "red", "blue": "blue", "green": "green", "orange": "dark_orange", "purple": "magenta", "gray": "grey50"}


def _println(msg: str = "") -> None:
    console.print(msg)


def _prompt(msg: str) -> str:
    return console.input(escape(msg))


def _event_line(ev: CourseEvent) -> str:
    style = _STYLE.get(ev.color, "white")
    bits = [f"{ev.start_time}-{ev.end_time}", f"[{style}]{escape(ev.title)}[/]"]
    if ev.location:
        bits.append(f"@ {escape(ev.location)}")
    if ev.attachments:
        bits.append(f"📎{len(ev.attachments)}")
    return " | ".join(bits)


def run_interactive(controller: SessionController) -> None:
    """
    Interactive menu loop: log in (or resume), then browse and edit the month.
    """
    if controller.restore() is None and not _flow_login(controller):
        return

    service = controller.service
    sync_log: list[SyncResult] = []
    if service.sync is not None:
        service.sync.set_listener(sync_log.append)

    month = date.today().replace(day=1)
    selected = date.today()

    while True:
        user = controller.user
        assert user is not None
        _print_month(controller, month, selected)

        choice = _prompt(
            "\n[n/p] Next / previous month   [t] Today\n"
            "[1] Select day\n"
            "[2] Add event on selected day\n"
            "[3] Edit event\n"
            "[4] Delete event\n"
            "[5] Show conflicts\n"
            "[6] Export .ics\n"
            "[7] Sync status\n"
            "[9] Log out\n"
            "[0] Exit\n"
            "Select: "
        ).strip().lower()

        try:
            if choice == "0":
                _println("Bye.")
                return
            if choice == "n":
                month = shift_month(month, 1)
            elif choice == "p":
                month = shift_month(month, -1)
            elif choice == "t":
                month = date.today().replace(day=1)
                selected = date.today()
            elif choice == "1":
                picked = _ask_date("Day (YYYY-MM-DD)", selected)
                if picked:
                    selected = picked
                    month = picked.replace(day=1)
            elif choice == "2":
                _flow_add(controller, selected)
            elif choice == "3":
                _flow_edit(controller, selected)
            elif choice == "4":
                _flow_delete(controller, selected)
            elif choice == "5":
                _flow_conflicts(controller)
            elif choice == "6":
                _flow_export(controller)
            elif choice == "7":
                _flow_sync_status(controller, sync_log)
            elif choice == "9":
                controller.logout()
                _println(f"Logged out: {escape(user.username)}")
                if not _flow_login(controller):
                    return
            else:
                _println("Invalid choice.")
        except StorageFull as e:
            _println(f"[bold red]{escape(str(e))}[/]")


def _flow_login(controller: SessionController) -> bool:
    while True:
        username = _prompt("Username [blank = exit]: ").strip()
        if not username:
            return False
        pin = console.input("PIN: ", password=True)
        if not pin:
            _println("PIN required.")
            continue
        try:
            controller.login(username, pin)
        except InvalidCredentials:
            _println("[bold red]Invalid PIN.[/]")
            continue
        _println(f"Welcome, {escape(username)}. {len(controller.events)} events loaded.")
        return True


def _print_month(controller: SessionController, month: date, selected: date) -> None:
    events = controller.events
    by_day: dict[str, list[CourseEvent]] = {}
    for ev in events:
        by_day.setdefault(ev.date, []).append(ev)

    user = controller.user
    title = f"{month.strftime('%B %Y')} - {escape(user.username) if user else ''}"
    table = Table(title=title, box=box.SIMPLE, show_lines=False)
    for name in WEEKDAY_NAMES:
        table.add_column(name, justify="left", min_width=8)

    today = date.today()
    for week in month_grid(month):
        row = []
        for day in week:
            label = f"{day.day:2d}"
            if day == selected:
                label = f"[reverse]{label}[/]"
            elif day == today:
                label = f"[bold cyan]{label}[/]"
            elif day.month != month.month:
                label = f"[dim]{label}[/]"

            dots = ""
            for ev in sorted(by_day.get(day_key(day), []), key=lambda e: e.start_time)[:3]:
                dots += f"[{_STYLE.get(ev.color, 'white')}]●[/]"
            extra = len(by_day.get(day_key(day), [])) - 3
            if extra > 0:
                dots += f"+{extra}"
            row.append(f"{label} {dots}".rstrip())
        table.add_row(*row)
    console.print(table)

    day_events = controller.events_on(selected)
    _println(f"[bold]{selected.isoformat()} ({WEEKDAY_NAMES[(selected.weekday() + 1) % 7]})[/]")
    if not day_events:
        _println("  No events.")
    for i, ev in enumerate(day_events, start=1):
        _println(f"  {i}) {_event_line(ev)}")


def _ask_date(label: str, default: date) -> Optional[date]:
    raw = _prompt(f"{label} [{default.isoformat()}]: ").strip()
    if not raw:
        return default
    try:
        return date.fromisoformat(raw)
    except ValueError:
        _println("Invalid date.")
        return None


def _ask_time(label: str, default: str) -> str:
    while True:
        raw = _prompt(f"{label} [{default}]: ").strip() or default
        try:
            minutes = time_to_minutes(raw)
        except ValueError:
            _println("Invalid time (HH:MM).")
            continue
        return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _ask_color(default: str) -> str:
    for i, c in enumerate(COURSE_COLORS, start=1):
        _println(f"  {i}) [{_STYLE[c.id]}]●[/] {c.name}")
    raw = _prompt(f"Colour [{default}]: ").strip()
    if raw.isdigit() and 1 <= int(raw) <= len(COURSE_COLORS):
        return COURSE_COLORS[int(raw) - 1].id
    return default


def _ask_attachments(existing: list[Attachment]) -> list[Attachment]:
    attachments = list(existing)
    while True:
        if attachments:
            _println("Attachments:")
            for i, a in enumerate(attachments, start=1):
                size = f" ({a.size} bytes)" if a.size is not None else ""
                _println(escape(f"  {i}) [{a.type}] {a.name}{size}"))
        raw = _prompt("[l] Add link  [f] Add file  [r] Remove  [blank] Done: ").strip().lower()
        if not raw:
            return attachments
        try:
            if raw == "l":
                url = _prompt("URL: ").strip()
                name = _prompt("Name [blank = URL]: ").strip()
                attachments.append(Attachment.link(url, name))
            elif raw == "f":
                path = _prompt("File path: ").strip()
                attachments.append(Attachment.from_file(Path(path).expanduser()))
            elif raw == "r":
                pick = _prompt("Number to remove: ").strip()
                if pick.isdigit() and 1 <= int(pick) <= len(attachments):
                    attachments.pop(int(pick) - 1)
        except (OSError, ValueError) as e:
            _println(f"[red]{escape(str(e))}[/]")


def _pick_event(controller: SessionController, day: date, verb: str) -> Optional[CourseEvent]:
    day_events = controller.events_on(day)
    if not day_events:
        _println("No events on the selected day.")
        return None
    pick = _prompt(f"Event number to {verb} [blank = cancel]: ").strip()
    if not pick.isdigit() or not (1 <= int(pick) <= len(day_events)):
        return None
    return day_events[int(pick) - 1]


def _flow_add(controller: SessionController, day: date) -> None:
    title = _prompt("Title [blank = cancel]: ").strip()
    if not title:
        return
    location = _prompt("Location: ").strip() or None
    start = _ask_time("Start", "09:00")
    end = _ask_time("End", "11:00")
    color = _ask_color(DEFAULT_COLOR)
    attachments = _ask_attachments([])

    ev = controller.create(
        CourseEvent(
            id=new_id(),
            title=title,
            date=day.isoformat(),
            start_time=start,
            end_time=end,
            color=color,
            location=location,
            attachments=attachments,
        )
    )
    _println(f"Added: {_event_line(ev)}")


def _flow_edit(controller: SessionController, day: date) -> None:
    picked = _pick_event(controller, day, "edit")
    if picked is None:
        return
    current = controller.begin_edit(picked.id)

    title = _prompt(f"Title [{current.title}]: ").strip() or current.title
    location = _prompt(f"Location [{current.location or ''}]: ").strip() or current.location
    start = _ask_time("Start", current.start_time)
    end = _ask_time("End", current.end_time)
    color = _ask_color(current.color)
    attachments = _ask_attachments(current.attachments or [])

    if _prompt("Save changes? [Y/n]: ").strip().lower() == "n":
        controller.cancel_edit()
        _println("Edit discarded.")
        return

    updated = dataclasses.replace(
        current,
        title=title,
        location=location,
        start_time=start,
        end_time=end,
        color=color,
        attachments=attachments,
    )
    if controller.update(updated):
        _println(f"Updated: {_event_line(updated)}")
    else:
        _println("Event no longer exists.")


def _flow_delete(controller: SessionController, day: date) -> None:
    picked = _pick_event(controller, day, "delete")
    if picked is None:
        return
    if _prompt(f"Delete '{picked.title}'? [y/N]: ").strip().lower() != "y":
        return
    controller.delete(picked.id)
    _println(f"Deleted: {escape(picked.title)}")


def _flow_conflicts(controller: SessionController) -> None:
    confs = find_conflicts(controller.events)
    if not confs:
        _println("No conflicts found.")
        return

    table = Table(title=f"Conflicts ({len(confs)})", box=box.SIMPLE)
    table.add_column("Date")
    table.add_column("Event A")
    table.add_column("Event B")
    for a, b in sorted(confs, key=lambda p: (p[0].date, p[0].start_time)):
        table.add_row(a.date, _event_line(a), _event_line(b))
    console.print(table)
    _prompt("\nPress Enter to go back...")


def _flow_export(controller: SessionController) -> None:
    events = controller.events
    if not events:
        _println("No events.")
        return

    downloads = Path.home() / "Downloads"
    default_name = "studyplanner.ics"
    out_in = _prompt(f"Please enter desired file name, default is [{default_name}]: ").strip()
    out_path = downloads / (out_in or default_name)
    if out_path.suffix.lower() != ".ics":
        out_path = out_path.with_suffix(".ics")

    n = export_events_to_ics(events, out_path)
    _println(f"\nExported {n} events.")
    _println(f"Saved to: {escape(str(out_path.resolve()))}")


def _flow_sync_status(controller: SessionController, sync_log: list[SyncResult]) -> None:
    sync = controller.service.sync
    if sync is None:
        _println("Remote store not configured: local-only mode.")
        return

    _println(f"Pending pushes: {sync.pending_count()}")
    if not sync_log:
        _println("No pushes finished in this session.")
        return
    table = Table(title="Recent pushes", box=box.SIMPLE)
    table.add_column("Finished")
    table.add_column("Events", justify="right")
    table.add_column("Result")
    for r in sync_log[-10:]:
        table.add_row(r.finished_at, str(r.count), "[green]ok[/]" if r.ok else f"[red]{escape(r.error)}[/]")
    console.print(table)
