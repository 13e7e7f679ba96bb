"""
Remote Store: optional network-backed `users` table.

The table is served through a PostgREST endpoint (Supabase):

    GET   {url}/rest/v1/users?username=eq.{username}&select=*
    POST  {url}/rest/v1/users                         body: [{username, pin, events}]
    PATCH {url}/rest/v1/users?username=eq.{username}  body: {events}

Every request carries a timeout. Any transport problem (connection error,
timeout, HTTP error status, unreadable body) is raised as RemoteUnavailable;
"no such user" is NOT an error and is returned as None.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from studyplanner.config import Settings
from studyplanner.errors import RemoteUnavailable

logger = logging.getLogger(__name__)

TABLE = "users"


class RemoteStore:
    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._key = key
        self._session = session if session is not None else requests.Session()
        self._table_url = f"{self.url}/rest/v1/{TABLE}"

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["RemoteStore"]:
        """
        Return a configured RemoteStore, or None when the remote is disabled.
        """
        url, key = settings.remote_url, settings.remote_key
        if not url or not key:
            return None
        return cls(url, key, timeout=settings.remote_timeout)

    def _headers(self, prefer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        params: Optional[dict[str, str]] = None,
        payload: Any = None,
        prefer: Optional[str] = None,
    ) -> requests.Response:
        try:
            resp = self._session.request(
                method,
                self._table_url,
                params=params,
                json=payload,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteUnavailable(f"{method} {TABLE} failed: {e}") from e

        if resp.status_code >= 400:
            raise RemoteUnavailable(f"{method} {TABLE} returned HTTP {resp.status_code}: {resp.text[:200]}")
        return resp

    @staticmethod
    def _rows(resp: requests.Response) -> list[dict[str, Any]]:
        try:
            rows = resp.json()
        except ValueError as e:
            raise RemoteUnavailable(f"Unreadable response body: {e}") from e
        if not isinstance(rows, list):
            raise RemoteUnavailable(f"Unexpected response shape: {type(rows).__name__}")
        return rows

    def fetch_user(self, username: str) -> Optional[dict[str, Any]]:
        """
        Return the user's row ({username, pin, events}) or None if it does not exist.
        """
        resp = self._request("GET", params={"username": f"eq.{username}", "select": "*"})
        rows = self._rows(resp)
        if not rows:
            return None
        row = rows[0]
        if not isinstance(row, dict):
            raise RemoteUnavailable(f"Unexpected row for {username!r}")
        return row

    def insert_user(self, username: str, pin: str, events: Optional[list[dict[str, Any]]] = None) -> None:
        """
        Create the user's row, seeded with `events` (empty by default).
        """
        self._request(
            "POST",
            payload=[{"username": username, "pin": pin, "events": list(events or [])}],
            prefer="return=minimal",
        )
        logger.info("Registered %s in remote store", username)

    def update_events(self, username: str, events: list[dict[str, Any]]) -> int:
        """
        Replace the user's events column. Returns the number of rows updated
        (0 when the user only exists locally).
        """
        resp = self._request(
            "PATCH",
            params={"username": f"eq.{username}"},
            payload={"events": events},
            prefer="return=representation",
        )
        return len(self._rows(resp))

    def close(self) -> None:
        self._session.close()
