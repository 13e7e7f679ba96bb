"""
Error taxonomy of the planner.

Propagation rules:
- InvalidCredentials, StorageFull, SessionNotReady and EventNotFound reach the caller
- RemoteUnavailable is absorbed by the storage service, which falls back to the
  local store; it only escapes when no tier could serve the request
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for all planner errors."""


class InvalidCredentials(PlannerError):
    """The pin does not match the stored credential of an existing user."""

    def __init__(self, username: str, store: str = "remote"):
        super().__init__(f"Invalid PIN for user '{username}' ({store})")
        self.username = username
        self.store = store


class RemoteUnavailable(PlannerError):
    """Network or server failure of the remote store (not a credential problem)."""


class StorageFull(PlannerError):
    """The local store has no room for the write. Nothing was written."""

    def __init__(self, key: str, needed: int, quota: int | None = None):
        if quota is not None:
            msg = f"Local storage full writing '{key}' ({needed} bytes, quota {quota} bytes). Remove large attachments."
        else:
            msg = f"Local storage full writing '{key}' ({needed} bytes). Remove large attachments."
        super().__init__(msg)
        self.key = key
        self.needed = needed
        self.quota = quota


class EventNotFound(PlannerError):
    """No event with the given id in the current collection."""

    def __init__(self, event_id: str):
        super().__init__(f"No event with id '{event_id}'")
        self.event_id = event_id


class SessionNotReady(PlannerError):
    """A mutation was requested before the user's events finished loading."""
