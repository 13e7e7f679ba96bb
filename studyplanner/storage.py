"""
Storage service: login and event persistence across the remote and local stores.

Every operation walks an ordered list of tiers:

    [RemoteTier (only if configured), LocalTier]

Each tier answers a lookup with a typed outcome:

    FOUND            the record exists (and is returned)
    NOT_FOUND        the store works, the record does not exist
    TRANSPORT_ERROR  the store could not be asked; try the next tier

Design rationale:
- the local store is the durable copy; it is written first on every save
- the remote store gives cross-device durability; its failures degrade the
  planner to local-only for that call instead of failing it
- a wrong PIN is a definitive answer, never retried against another tier

Security note: pins are compared in plaintext, exactly as stored. Hashing
them would make existing credential records unreadable without a migration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from studyplanner.config import Settings
from studyplanner.errors import InvalidCredentials, RemoteUnavailable
from studyplanner.local_store import SESSION_KEY, LocalStore, auth_key, data_key
from studyplanner.model import CourseEvent, User, events_from_dicts, events_to_dicts, utc_now_iso
from studyplanner.remote_store import RemoteStore
from studyplanner.sync import SyncWorker

logger = logging.getLogger(__name__)


class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class Lookup:
    status: LookupStatus
    value: Any = None
    error: str = ""

    @classmethod
    def found(cls, value: Any) -> "Lookup":
        return cls(LookupStatus.FOUND, value)

    @classmethod
    def not_found(cls) -> "Lookup":
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def transport_error(cls, error: str) -> "Lookup":
        return cls(LookupStatus.TRANSPORT_ERROR, error=error)


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


class RemoteTier:
    name = "remote"

    def __init__(self, remote: RemoteStore, local: "LocalTier"):
        self.remote = remote
        self.local = local

    def lookup_pin(self, username: str) -> Lookup:
        try:
            row = self.remote.fetch_user(username)
        except RemoteUnavailable as e:
            return Lookup.transport_error(str(e))
        if row is None:
            return Lookup.not_found()
        return Lookup.found(str(row.get("pin", "")))

    def register(self, username: str, pin: str) -> None:
        """
        Create the remote row, seeded with the local collection so events
        saved while offline are kept. Raises RemoteUnavailable if the insert fails.
        """
        outcome = self.local.lookup_events(username)
        seed = events_to_dicts(outcome.value) if outcome.status is LookupStatus.FOUND else []
        self.remote.insert_user(username, pin, events=seed)

    def lookup_events(self, username: str) -> Lookup:
        try:
            row = self.remote.fetch_user(username)
        except RemoteUnavailable as e:
            return Lookup.transport_error(str(e))
        # a row without an events array has no usable data
        if row is None or not isinstance(row.get("events"), list):
            return Lookup.not_found()
        try:
            return Lookup.found(events_from_dicts(row["events"]))
        except ValueError as e:
            return Lookup.transport_error(f"Malformed remote events: {e}")


class LocalTier:
    name = "local"

    def __init__(self, local: LocalStore):
        self.local = local

    def lookup_pin(self, username: str) -> Lookup:
        stored = self.local.get(auth_key(username))
        if stored is None:
            return Lookup.not_found()
        return Lookup.found(stored)

    def register(self, username: str, pin: str) -> None:
        """Raises StorageFull if the credential cannot be written."""
        self.local.set(auth_key(username), pin)

    def lookup_events(self, username: str) -> Lookup:
        key = data_key(username)
        try:
            raw = self.local.get_json(key)
        except ValueError as e:
            logger.error("Unreadable local data for %s: %s", username, e)
            return Lookup.not_found()
        if raw is None:
            return Lookup.not_found()
        try:
            return Lookup.found(events_from_dicts(raw))
        except ValueError as e:
            logger.error("Malformed local events for %s: %s", username, e)
            return Lookup.not_found()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class StorageService:
    def __init__(
        self,
        local: LocalStore,
        remote: Optional[RemoteStore] = None,
        sync: Optional[SyncWorker] = None,
    ):
        self.local = local
        self.remote = remote
        if remote is not None and sync is None:
            sync = SyncWorker(remote)
        self.sync = sync
        self._local_tier = LocalTier(local)
        self._tiers: list[Any] = [self._local_tier]
        if remote is not None:
            self._tiers.insert(0, RemoteTier(remote, self._local_tier))

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageService":
        local = LocalStore(settings.data_dir, quota_bytes=settings.quota_bytes)
        return cls(local, RemoteStore.from_settings(settings))

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self, username: str, pin: str) -> User:
        """
        Authenticate, registering the user on first login.

        Raises InvalidCredentials on a pin mismatch in the first tier that
        answers, StorageFull if a local registration cannot be written.
        """
        username = username.strip()
        if not username:
            raise ValueError("Username must not be empty")

        for tier in self._tiers:
            outcome = tier.lookup_pin(username)

            if outcome.status is LookupStatus.TRANSPORT_ERROR:
                logger.warning("Falling back from %s store for login of %s: %s", tier.name, username, outcome.error)
                continue

            if outcome.status is LookupStatus.FOUND:
                if outcome.value != pin:
                    raise InvalidCredentials(username, tier.name)
                logger.debug("Login of %s via %s store", username, tier.name)
                return User(username=username, last_login=utc_now_iso())

            try:
                tier.register(username, pin)
            except RemoteUnavailable as e:
                logger.warning("Falling back from %s store for registration of %s: %s", tier.name, username, e)
                continue
            logger.info("Registered new user %s in %s store", username, tier.name)
            return User(username=username, last_login=utc_now_iso())

        # only reachable if the local tier was removed
        raise RemoteUnavailable(f"No store could authenticate '{username}'")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def load_events(self, username: str) -> list[CourseEvent]:
        """
        Load the user's full collection. A missing collection is [] (never an error).
        """
        for tier in self._tiers:
            outcome = tier.lookup_events(username)
            if outcome.status is LookupStatus.FOUND:
                logger.debug("Loaded %d events for %s from %s store", len(outcome.value), username, tier.name)
                return outcome.value
            if outcome.status is LookupStatus.TRANSPORT_ERROR:
                logger.warning("Falling back from %s store loading %s: %s", tier.name, username, outcome.error)
        return []

    def save_events(self, username: str, events: list[CourseEvent]) -> None:
        """
        Persist the full collection.

        The local write happens first and may raise StorageFull (nothing is
        written in that case). The remote push is detached and never raises.
        """
        self.local.set(data_key(username), dump_events(events))

        if self.sync is not None:
            self.sync.push(username, events_to_dicts(events))

    # ------------------------------------------------------------------
    # Session marker
    # ------------------------------------------------------------------

    def remember_session(self, user: User) -> None:
        self.local.set_json(SESSION_KEY, user.to_dict())

    def restore_session(self) -> Optional[User]:
        """
        Return the last authenticated user, or None. A corrupt marker is removed.
        """
        try:
            raw = self.local.get_json(SESSION_KEY)
            if raw is None:
                return None
            if not isinstance(raw, dict):
                raise ValueError("session marker is not an object")
            return User.from_dict(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable session marker: %s", e)
            self.local.remove(SESSION_KEY)
            return None

    def forget_session(self) -> None:
        self.local.remove(SESSION_KEY)

    def close(self) -> None:
        """
        Finish pending remote pushes and release the HTTP session.
        """
        if self.sync is not None:
            self.sync.shutdown(wait=True)
        if self.remote is not None:
            self.remote.close()


def dump_events(events: list[CourseEvent]) -> str:
    """
    Canonical JSON text of a collection (same form the local store writes).
    """
    return json.dumps(events_to_dicts(events), ensure_ascii=False, separators=(",", ":"))
