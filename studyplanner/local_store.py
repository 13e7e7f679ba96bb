"""
Local Store: durable key-value storage on this device.

Every key is one file inside the store directory:

    {data_dir}/session%3Acurrent.dat
    {data_dir}/auth%3Aann.dat
    {data_dir}/data%3Aann.dat

File names are the percent-encoded key, values are UTF-8 text (JSON for
structured values). Writes go to a temporary file first and are moved into
place with os.replace, so a failed write leaves the previous value intact.

The store enforces an optional byte quota (like a browser's localStorage).
A write that would exceed it, or that hits a full disk, raises StorageFull
and writes nothing.
"""

from __future__ import annotations

import errno
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote, unquote

from studyplanner.errors import StorageFull

logger = logging.getLogger(__name__)

SESSION_KEY = "session:current"

_SUFFIX = ".dat"
_FULL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


def auth_key(username: str) -> str:
    return f"auth:{username}"


def data_key(username: str) -> str:
    return f"data:{username}"


class LocalStore:
    def __init__(self, root: str | Path, quota_bytes: Optional[int] = None):
        self.root = Path(root)
        self.quota_bytes = quota_bytes
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / (quote(key, safe="") + _SUFFIX)

    @staticmethod
    def _entry_size(key: str, value_bytes: int) -> int:
        return len(key.encode("utf-8")) + value_bytes

    # ------------------------------------------------------------------
    # Raw string access
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """
        Return the stored value or None if the key does not exist.
        """
        p = self._path(key)
        try:
            return p.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        """
        Store a value, replacing any previous one (all-or-nothing).

        Raises StorageFull if the quota or the disk does not allow the write.
        """
        payload = value.encode("utf-8")

        if self.quota_bytes is not None:
            used = self.usage(exclude=key)
            needed = self._entry_size(key, len(payload))
            if used + needed > self.quota_bytes:
                logger.warning("Quota exceeded writing %s: %d + %d > %d", key, used, needed, self.quota_bytes)
                raise StorageFull(key, needed, self.quota_bytes)

        p = self._path(key)
        tmp = p.with_name(p.name + ".tmp")
        try:
            with open(tmp, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, p)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            if e.errno in _FULL_ERRNOS:
                logger.error("Disk full writing %s: %s", key, e)
                raise StorageFull(key, len(payload)) from e
            raise
        logger.debug("Stored %s (%d bytes)", key, len(payload))

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return sorted(unquote(p.name[: -len(_SUFFIX)]) for p in self.root.glob("*" + _SUFFIX))

    def usage(self, exclude: Optional[str] = None) -> int:
        """
        Bytes counted against the quota (keys + values), optionally ignoring one key.
        """
        total = 0
        for key in self.keys():
            if key == exclude:
                continue
            try:
                size = self._path(key).stat().st_size
            except FileNotFoundError:
                continue
            total += self._entry_size(key, size)
        return total

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def get_json(self, key: str) -> Any:
        """
        Return the decoded JSON value, or None for a missing key.
        Raises ValueError if the stored text is not valid JSON.
        """
        raw = self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False, separators=(",", ":")))
