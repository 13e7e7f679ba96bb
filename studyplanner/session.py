"""
Session controller: the in-memory event collection of the logged-in user.

Phases:

    LOGGED_OUT --login/restore--> LOADING --events loaded--> READY
    any phase  --logout-->        LOGGED_OUT

The collection is written to storage only in READY. A mutation arriving
while the events are still loading is rejected with SessionNotReady, so an
empty in-memory collection can never overwrite the persisted one.

Mutations are applied to a copy, persisted, and only then committed to
memory: if the write fails (StorageFull) memory and disk stay identical.

update() and delete() on an unknown id are silent no-ops that return False;
get() and begin_edit() raise EventNotFound.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from studyplanner.calendar_grid import events_on
from studyplanner.errors import EventNotFound, SessionNotReady
from studyplanner.model import CourseEvent, User, new_id
from studyplanner.storage import StorageService

logger = logging.getLogger(__name__)


class Phase(Enum):
    LOGGED_OUT = "logged_out"
    LOADING = "loading"
    READY = "ready"


@dataclass
class SessionContext:
    """State of one login; replaced wholesale on login and dropped on logout."""

    user: User
    phase: Phase = Phase.LOADING
    events: list[CourseEvent] = field(default_factory=list)
    editing_id: Optional[str] = None


class SessionController:
    def __init__(self, service: StorageService):
        self._service = service
        self._ctx: Optional[SessionContext] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def service(self) -> StorageService:
        return self._service

    @property
    def phase(self) -> Phase:
        ctx = self._ctx
        return ctx.phase if ctx is not None else Phase.LOGGED_OUT

    @property
    def loaded(self) -> bool:
        return self.phase is Phase.READY

    @property
    def user(self) -> Optional[User]:
        ctx = self._ctx
        return ctx.user if ctx is not None else None

    @property
    def events(self) -> list[CourseEvent]:
        ctx = self._ctx
        return list(ctx.events) if ctx is not None else []

    @property
    def editing(self) -> Optional[CourseEvent]:
        ctx = self._ctx
        if ctx is None or ctx.editing_id is None:
            return None
        return next((e for e in ctx.events if e.id == ctx.editing_id), None)

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, username: str, pin: str) -> User:
        """
        Authenticate, then load the user's events. A failed login keeps the
        current session untouched.
        """
        user = self._service.login(username, pin)
        self._service.remember_session(user)
        self._start(user)
        return user

    def restore(self) -> Optional[User]:
        """
        Resume the session remembered from a previous run, if any.
        """
        user = self._service.restore_session()
        if user is None:
            return None
        self._start(user)
        return user

    def reload(self) -> None:
        ctx = self._ctx
        if ctx is None:
            raise SessionNotReady("Not logged in")
        self._start(ctx.user)

    def logout(self) -> None:
        with self._lock:
            self._ctx = None
        self._service.forget_session()

    def _start(self, user: User) -> None:
        ctx = SessionContext(user=user)
        with self._lock:
            self._ctx = ctx

        try:
            events = self._service.load_events(user.username)
        except Exception:
            # back to LOGGED_OUT; a remembered marker would fail the same way on restore
            with self._lock:
                if self._ctx is ctx:
                    self._ctx = None
            self._service.forget_session()
            raise

        with self._lock:
            # a logout or another login happened while loading
            if self._ctx is not ctx:
                logger.info("Discarding stale load for %s", user.username)
                return
            ctx.events = list(events)
            ctx.phase = Phase.READY
        logger.debug("Session ready for %s with %d events", user.username, len(events))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, event_id: str) -> CourseEvent:
        ctx = self._require_ready()
        for e in ctx.events:
            if e.id == event_id:
                return e
        raise EventNotFound(event_id)

    def events_on(self, day: date) -> list[CourseEvent]:
        return events_on(self.events, day)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, event: CourseEvent) -> CourseEvent:
        ctx = self._require_ready()
        if not event.id or any(e.id == event.id for e in ctx.events):
            event = dataclasses.replace(event, id=new_id())
        self._commit(ctx, ctx.events + [event])
        return event

    def update(self, event: CourseEvent) -> bool:
        ctx = self._require_ready()
        if not any(e.id == event.id for e in ctx.events):
            return False
        self._commit(ctx, [event if e.id == event.id else e for e in ctx.events])
        if ctx.editing_id == event.id:
            ctx.editing_id = None
        return True

    def delete(self, event_id: str) -> bool:
        ctx = self._require_ready()
        remaining = [e for e in ctx.events if e.id != event_id]
        if len(remaining) == len(ctx.events):
            return False
        self._commit(ctx, remaining)
        if ctx.editing_id == event_id:
            ctx.editing_id = None
        return True

    def begin_edit(self, event_id: str) -> CourseEvent:
        event = self.get(event_id)
        ctx = self._require_ready()
        ctx.editing_id = event.id
        return event

    def cancel_edit(self) -> None:
        ctx = self._ctx
        if ctx is not None:
            ctx.editing_id = None

    def _require_ready(self) -> SessionContext:
        ctx = self._ctx
        if ctx is None:
            raise SessionNotReady("Not logged in")
        if ctx.phase is not Phase.READY:
            raise SessionNotReady(f"Events of {ctx.user.username} are still loading")
        return ctx

    def _commit(self, ctx: SessionContext, new_events: list[CourseEvent]) -> None:
        # may raise StorageFull; memory is only replaced after a successful write
        self._service.save_events(ctx.user.username, new_events)
        ctx.events = new_events
