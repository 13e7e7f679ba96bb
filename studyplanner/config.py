"""
Runtime settings.

Everything is read from the environment; a .env file in the working directory
(or the file passed explicitly) is loaded first with python-dotenv, without
overriding variables that are already set.

The remote store is active only when BOTH of these are set:

    SUPABASE_URL        endpoint, e.g. https://xyz.supabase.co
    SUPABASE_ANON_KEY   access key

Without them the planner runs local-only. Other settings:

    STUDYPLANNER_DATA_DIR        local store directory
    STUDYPLANNER_QUOTA_BYTES     local store quota, 0 = unlimited (default 5 MiB)
    STUDYPLANNER_REMOTE_TIMEOUT  seconds per remote request (default 10)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024
DEFAULT_REMOTE_TIMEOUT = 10.0


def default_data_dir(environ: Mapping[str, str] | None = None) -> Path:
    """
    Return the default local store directory respecting XDG_DATA_HOME.
    """
    env = os.environ if environ is None else environ
    xdg_data = env.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    return Path(xdg_data) / "studyplanner"


@dataclass
class Settings:
    data_dir: Path
    remote_url: Optional[str] = None
    remote_key: Optional[str] = None
    quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES
    remote_timeout: float = DEFAULT_REMOTE_TIMEOUT

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_url and self.remote_key)


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _read_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    return value if value > 0 else default


def load_settings(env_file: str | Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """
    Build Settings from the environment.

    Passing `environ` skips .env loading entirely (used by tests).
    """
    if environ is None:
        dotenv_path = str(env_file) if env_file is not None else find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path, override=False)
        environ = os.environ

    url = (environ.get("SUPABASE_URL") or "").strip() or None
    key = (environ.get("SUPABASE_ANON_KEY") or "").strip() or None

    data_dir_raw = (environ.get("STUDYPLANNER_DATA_DIR") or "").strip()
    data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else default_data_dir(environ)

    quota = _read_int(environ, "STUDYPLANNER_QUOTA_BYTES", DEFAULT_QUOTA_BYTES)

    settings = Settings(
        data_dir=data_dir,
        remote_url=url.rstrip("/") if url else None,
        remote_key=key,
        quota_bytes=quota if quota > 0 else None,
        remote_timeout=_read_float(environ, "STUDYPLANNER_REMOTE_TIMEOUT", DEFAULT_REMOTE_TIMEOUT),
    )
    if not settings.remote_enabled:
        logger.debug("Remote store not configured, running local-only")
    return settings
