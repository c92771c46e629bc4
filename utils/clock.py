"""Wall-clock abstraction so time-dependent components can be driven in tests."""
import time
from datetime import datetime, timezone


class SystemClock:
    """Reads the real wall clock."""

    def now(self) -> float:
        """Current unix time in seconds."""
        return time.time()

    def utcnow(self) -> datetime:
        return datetime.fromtimestamp(self.now(), tz=timezone.utc)


def now_ms(clock) -> int:
    return int(clock.now() * 1000)
