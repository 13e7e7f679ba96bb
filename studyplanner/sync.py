"""
Background sync worker - pushes event collections to the remote store.

Pushes are fire-and-forget: the caller gets a ticket back immediately and
never waits for the network. A single worker thread runs the pushes, so
snapshots for the same user reach the server in the order they were saved.

Every finished push produces a SyncResult that is:
- logged (INFO on success, ERROR on failure)
- put on the `results` queue
- passed to the optional listener callback

Nothing is retried automatically.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from studyplanner.errors import RemoteUnavailable
from studyplanner.model import utc_now_iso
from studyplanner.remote_store import RemoteStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    ticket: str
    username: str
    count: int
    ok: bool
    error: str = ""
    finished_at: str = ""


class SyncWorker:
    def __init__(
        self,
        remote: RemoteStore,
        listener: Optional[Callable[[SyncResult], None]] = None,
    ):
        self._remote = remote
        self._listener = listener
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sync")
        self._pending: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self.results: "queue.Queue[SyncResult]" = queue.Queue()

    def set_listener(self, listener: Optional[Callable[[SyncResult], None]]) -> None:
        self._listener = listener

    def push(self, username: str, events: list[dict[str, Any]]) -> str:
        """
        Queue a push of the full collection. Never raises; returns the ticket.
        """
        ticket = str(uuid.uuid4())
        snapshot = list(events)
        try:
            future = self._executor.submit(self._run, username, snapshot)
        except RuntimeError as e:
            # executor already shut down
            self._report(SyncResult(ticket, username, len(snapshot), False, str(e), utc_now_iso()))
            return ticket

        with self._lock:
            self._pending[ticket] = future
        future.add_done_callback(lambda f: self._on_done(ticket, username, len(snapshot), f))
        return ticket

    def _run(self, username: str, events: list[dict[str, Any]]) -> int:
        rows = self._remote.update_events(username, events)
        if rows == 0:
            raise RemoteUnavailable(f"No remote record for '{username}'")
        return rows

    def _on_done(self, ticket: str, username: str, count: int, future: Future) -> None:
        error = future.exception()
        if error is None:
            result = SyncResult(ticket, username, count, True, "", utc_now_iso())
        else:
            result = SyncResult(ticket, username, count, False, f"{type(error).__name__}: {error}", utc_now_iso())
        self._report(result)

        # dropped only after reporting, so wait() implies the result is queued
        with self._idle:
            self._pending.pop(ticket, None)
            self._idle.notify_all()

    def _report(self, result: SyncResult) -> None:
        if result.ok:
            logger.info("Synced %d events for %s to remote store", result.count, result.username)
        else:
            logger.error("Failed to sync events for %s: %s", result.username, result.error)

        self.results.put(result)
        listener = self._listener
        if listener is not None:
            try:
                listener(result)
            except Exception:
                logger.exception("Sync listener failed for ticket %s", result.ticket)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until all pushes submitted so far are finished. Returns False on timeout.
        Diagnostics and shutdown only; the save path never calls this.
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
