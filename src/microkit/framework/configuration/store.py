"""
Process-wide configuration state.
"""

import copy
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from .conversion import to_bool, to_duration, to_float, to_int, to_string, to_string_list

logger = logging.getLogger(__name__)

KEY_DELIMITER = "."

_MISSING = object()


class ConfigurationStore:
    """
    Current view of a service's configuration.

    Values come from two places, in order of precedence:

    1. environment variables, read at access time (``log_level`` is
       overridden by ``LOG_LEVEL``, or ``<PREFIX>_LOG_LEVEL`` when an env
       prefix is configured; ``.`` and ``-`` in keys become ``_``);
    2. the most recently merged configuration document.

    A merge replaces the whole document. The new document is prepared
    before it is swapped in under the lock, so readers see either the old
    snapshot or the new one, never a mix. Keys are case-insensitive and
    ``.`` addresses nested mappings.
    """

    def __init__(self, env_prefix: str = "", allow_empty_env: bool = False):
        self._env_prefix = env_prefix.strip().rstrip("_").upper()
        self._allow_empty_env = allow_empty_env
        self._document: Dict[str, Any] = {}
        self._version = 0
        self._last_merged_at: Optional[datetime] = None
        self._reload_callbacks: List[Callable[[], None]] = []
        self._lock = threading.RLock()

    @property
    def env_prefix(self) -> str:
        return self._env_prefix

    @property
    def version(self) -> int:
        """Number of merges applied so far."""
        with self._lock:
            return self._version

    @property
    def last_merged_at(self) -> Optional[datetime]:
        with self._lock:
            return self._last_merged_at

    def merge(self, document: Mapping[str, Any]) -> None:
        """Replace the document-derived view with ``document``."""
        prepared = _normalize_keys(copy.deepcopy(dict(document)))

        with self._lock:
            self._document = prepared
            self._version += 1
            self._last_merged_at = datetime.now(timezone.utc)
            version = self._version
            callbacks = list(self._reload_callbacks)

        logger.debug(f"Merged configuration document (version {version}, {len(prepared)} keys)")

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in reload callback: {e}")

    def env_key(self, key: str) -> str:
        """Name of the environment variable that overrides ``key``."""
        name = key.upper().replace(KEY_DELIMITER, "_").replace("-", "_")
        if self._env_prefix:
            return f"{self._env_prefix}_{name}"
        return name

    def _lookup_env(self, key: str) -> Any:
        value = os.environ.get(self.env_key(key))
        if value is None:
            return _MISSING
        if value == "" and not self._allow_empty_env:
            return _MISSING
        return value

    def _lookup_document(self, key: str) -> Any:
        with self._lock:
            document = self._document

        key = key.lower()
        if key in document:
            return document[key]

        current: Any = document
        for part in key.split(KEY_DELIMITER):
            if not isinstance(current, dict) or part not in current:
                return _MISSING
            current = current[part]
        return current

    def get(self, key: str, default: Any = None) -> Any:
        """Raw value for ``key``, environment first, then document, else ``default``."""
        value = self._lookup_env(key)
        if value is _MISSING:
            value = self._lookup_document(key)
        if value is _MISSING:
            return default
        if isinstance(value, (dict, list)):
            return copy.deepcopy(value)
        return value

    def is_set(self, key: str) -> bool:
        return self._lookup_env(key) is not _MISSING or self._lookup_document(key) is not _MISSING

    def get_string(self, key: str) -> str:
        return to_string(self.get(key))

    def get_int(self, key: str) -> int:
        return to_int(self.get(key))

    def get_float(self, key: str) -> float:
        return to_float(self.get(key))

    def get_bool(self, key: str) -> bool:
        return to_bool(self.get(key))

    def get_duration(self, key: str) -> timedelta:
        return to_duration(self.get(key))

    def get_string_list(self, key: str) -> List[str]:
        return to_string_list(self.get(key))

    def all_settings(self) -> Dict[str, Any]:
        """Deep copy of the merged document, taken from a single snapshot."""
        with self._lock:
            document = self._document
        return copy.deepcopy(document)

    def add_reload_callback(self, callback: Callable[[], None]) -> None:
        """Add a callback to be called after every merge."""
        with self._lock:
            self._reload_callbacks.append(callback)

    def remove_reload_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._reload_callbacks:
                self._reload_callbacks.remove(callback)


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_keys(item) for item in value]
    return value
