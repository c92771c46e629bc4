"""Fixed-window rate limiter, thread-safe."""
import logging
import threading

from models.ratelimit import RateLimitEntry, RateLimitResult
from monitor.scheduler import PeriodicJob
from utils.clock import SystemClock

logger = logging.getLogger("governor.rate_limiting")


class RateLimiter:
    """Per-identifier request counter over fixed windows.

    An entry counts requests until its ``reset_time``; the first check at or
    after that instant starts a fresh window. A periodic sweep drops expired
    entries so memory tracks only identifiers active in their window.
    """

    def __init__(self, clock=None, cleanup_interval_seconds=300):
        self.clock = clock or SystemClock()
        self._store = {}
        self._lock = threading.Lock()
        self._cleanup_job = PeriodicJob("ratelimit-cleanup", cleanup_interval_seconds, self.cleanup)

    def check(self, identifier, max_requests, window_ms) -> RateLimitResult:
        now = self.clock.now()
        with self._lock:
            entry = self._store.get(identifier)

            if entry is None or entry.is_expired(now):
                reset_time = now + window_ms / 1000.0
                self._store[identifier] = RateLimitEntry(count=1, window_start=now, reset_time=reset_time)
                return RateLimitResult(allowed=True, remaining=max(max_requests - 1, 0),
                                       reset_time=reset_time, limit=max_requests)

            if entry.count >= max_requests:
                return RateLimitResult(allowed=False, remaining=0,
                                       reset_time=entry.reset_time, limit=max_requests)

            entry.count += 1
            return RateLimitResult(allowed=True, remaining=max_requests - entry.count,
                                   reset_time=entry.reset_time, limit=max_requests)

    def cleanup(self) -> int:
        """Drop entries whose window has passed. Returns how many were removed."""
        now = self.clock.now()
        with self._lock:
            expired = [k for k, e in self._store.items() if e.is_expired(now)]
            for key in expired:
                del self._store[key]
        if expired:
            logger.debug(f"Rate limit cleanup removed {len(expired)} entries")
        return len(expired)

    def get_entry(self, identifier):
        with self._lock:
            entry = self._store.get(identifier)
            return RateLimitEntry(entry.count, entry.window_start, entry.reset_time) if entry else None

    def reset(self, identifier):
        with self._lock:
            self._store.pop(identifier, None)

    def clear(self):
        with self._lock:
            self._store.clear()

    def __len__(self):
        with self._lock:
            return len(self._store)

    def start(self):
        self._cleanup_job.start()

    def destroy(self):
        self._cleanup_job.stop()
