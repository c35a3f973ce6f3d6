"""
Debounced writer in front of the state database.

Reads are served from an in-memory cache. Writes land in the cache at once and
reach SQLite after a quiet period, so a burst of updates (streamed output,
counters) costs a single write per key.
"""

import copy
import threading
from typing import Any, Dict, Optional

from src.config import PERSIST_DEBOUNCE_MS
from .database import Database


class PersistedState:
    """
    Cached, debounced view over a Database.

    Thread-safe: the scheduler writes from the event loop thread while the
    web handlers read from request threads.
    """

    def __init__(self, database: Database, debounce_ms: int = PERSIST_DEBOUNCE_MS):
        """
        Args:
            database: Backing key-value store
            debounce_ms: Quiet period before pending writes are flushed;
                0 or less writes through immediately
        """
        self.database = database
        self.debounce_ms = debounce_ms
        self._cache: Dict[str, Any] = {}
        self._dirty: set = set()
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._closed = False

    def get(self, key: str, default: Any = None) -> Any:
        """Return a deep copy of the stored value, loading it on first access."""
        with self._lock:
            if key not in self._cache:
                value = self.database.get(key)
                if value is None:
                    return copy.deepcopy(default)
                self._cache[key] = value
            return copy.deepcopy(self._cache[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = copy.deepcopy(value)
            self._dirty.add(key)
            if self.debounce_ms <= 0 or self._closed:
                self._flush_locked()
            else:
                self._schedule_flush()

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)
            self._dirty.discard(key)
            self.database.delete(key)

    @property
    def has_pending_writes(self) -> bool:
        with self._lock:
            return bool(self._dirty)

    def _schedule_flush(self):
        if self._timer is not None:
            self._timer.cancel()
        self._timer = threading.Timer(self.debounce_ms / 1000, self.flush)
        self._timer.daemon = True
        self._timer.start()

    def _flush_locked(self):
        for key in sorted(self._dirty):
            self.database.set(key, self._cache[key])
        self._dirty.clear()

    def flush(self) -> None:
        """Write every pending key now."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._flush_locked()

    def close(self) -> None:
        """Flush pending writes and stop the debounce timer."""
        with self._lock:
            self.flush()
            self._closed = True
