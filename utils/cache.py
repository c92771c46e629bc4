"""Generic TTL cache."""
import threading

from utils.clock import SystemClock


class TTLCache:
    """Thread-safe key-value cache with per-key TTL."""

    def __init__(self, clock=None):
        self._store = {}
        self._lock = threading.Lock()
        self.clock = clock or SystemClock()

    def get(self, key, default=None):
        """Get value if exists and not expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            if self.clock.now() >= entry["expires"]:
                del self._store[key]
                return default
            return entry["value"]

    def __contains__(self, key):
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def set(self, key, value, ttl=300):
        """Set key with TTL in seconds."""
        with self._lock:
            self._store[key] = {
                "value": value,
                "expires": self.clock.now() + ttl,
            }

    def invalidate(self, key):
        """Remove a specific key."""
        with self._lock:
            self._store.pop(key, None)

    def clear(self):
        """Remove all entries."""
        with self._lock:
            self._store.clear()

    def __len__(self):
        with self._lock:
            return len(self._store)
