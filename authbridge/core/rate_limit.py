"""
In-process OTP send limiter.

Fixed-window token bucket keyed by an abuse-prevention key (identifier or
client IP). Buckets live in process memory: they reset on restart and every
instance of a multi-instance deployment keeps its own. The identity provider
still enforces its own server-side limits.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

DEFAULT_MAX_SENDS = 5
DEFAULT_WINDOW_MS = 10 * 60 * 1000


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class RateBucket:
    tokens: int
    reset_at: int  # clock milliseconds


class OtpRateLimiter:
    def __init__(
        self,
        max_sends: int = DEFAULT_MAX_SENDS,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], int] = _monotonic_ms,
    ):
        self.max_sends = max_sends
        self.window_ms = window_ms
        self._clock = clock
        self._buckets: Dict[str, RateBucket] = {}
        self._lock = threading.Lock()

    def can_send(self, key: str, max_sends: Optional[int] = None, window_ms: Optional[int] = None) -> bool:
        """Consume one token for key. Returns False, consuming nothing, once the window is exhausted."""
        max_sends = self.max_sends if max_sends is None else max_sends
        window_ms = self.window_ms if window_ms is None else window_ms
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = RateBucket(tokens=max_sends, reset_at=now + window_ms)
                self._buckets[key] = bucket
            if bucket.tokens <= 0:
                return False
            bucket.tokens -= 1
            return True

    def _evict_expired(self, now: int):
        expired = [k for k, b in self._buckets.items() if now >= b.reset_at]
        for key in expired:
            del self._buckets[key]

    def get_bucket(self, key: str) -> Optional[RateBucket]:
        return self._buckets.get(key)
