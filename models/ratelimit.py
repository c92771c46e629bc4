"""Dataclasses for rate-limit bookkeeping."""
import math
from dataclasses import dataclass


@dataclass
class RateLimitEntry:
    count: int = 0
    window_start: float = 0.0
    reset_time: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now >= self.reset_time


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float
    limit: int = 0

    def headers(self) -> dict:
        """The X-RateLimit-* headers describing this result."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_time)),
        }
