from __future__ import annotations

import logging
import os
import threading
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

REPO_PATH_PLACEHOLDER = "/path/to/repo"

DEFAULTS: dict[str, str] = {
    "git.repo.path": REPO_PATH_PLACEHOLDER,
    "git.repo.url": "",
    "git.username": "",
    "git.token": "",
    "git.poll.interval.minutes": "5",
    "git.poll.initial.delay.seconds": "60",
    "tagger.python.executable": "python3",
    "tagger.script.path": "./stag-main/stag.py",
    "tagger.timeout.seconds": "30",
    "scripts.timeout.seconds": "60",
    "scripts.shell": "/bin/bash",
    "thumbnail.max.size": "200",
}


def env_key(key: str) -> str:
    """Map a dotted property key to its environment variable name (git.repo.path -> GIT_REPO_PATH)."""
    return key.replace(".", "_").replace("-", "_").upper()


class ConfigProvider:
    """
    Runtime-overridable property source.

    Lookup order is: in-memory override, environment variable, caller default.
    Overrides take effect immediately, so long-running jobs must re-read values
    on every run instead of caching them.
    """

    def __init__(
        self,
        overrides: Optional[Mapping[str, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._overrides: dict[str, str] = dict(overrides or {})
        self._environ = environ
        self._lock = threading.Lock()

    def get_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            if key in self._overrides:
                return self._overrides[key]
        environ = self._environ if self._environ is not None else os.environ
        value = environ.get(env_key(key))
        if value is not None:
            return value
        if default is not None:
            return default
        return DEFAULTS.get(key)

    def get_int(self, key: str, default: int) -> int:
        raw = self.get_property(key, str(default))
        try:
            return int(str(raw).strip())
        except (TypeError, ValueError):
            logger.warning("Config: invalid integer for %s=%r, using %d", key, raw, default)
            return default

    def set_property(self, key: str, value: str) -> None:
        with self._lock:
            self._overrides[key] = value

    def clear_override(self, key: str) -> None:
        with self._lock:
            self._overrides.pop(key, None)

    def repo_path(self) -> Optional[str]:
        """Configured repository root, or None while it is unset or the placeholder."""
        value = (self.get_property("git.repo.path") or "").strip()
        if not value or value == REPO_PATH_PLACEHOLDER:
            return None
        return value
