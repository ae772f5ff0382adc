"""
FarmLink - Request Rate Limiting
=================================
Sliding-window request counters keyed by client identity.

The limiter lives on `app.state.rate_limiter`. InMemoryRateLimiter serves a
single process; a shared counter with the same interface serves several.
"""

import threading
from collections import defaultdict, deque
from datetime import timedelta
from typing import Deque, Dict

from common.helpers import now_utc


class RateLimiter:
    """Interface: hit() records one request and says whether it is allowed."""

    def hit(self, key: str) -> bool:
        raise NotImplementedError

    def prune(self) -> int:
        """Drop expired bookkeeping. Returns number of keys removed."""
        return 0


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window = timedelta(seconds=window_seconds)
        self._hits: Dict[str, Deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        now = now_utc()
        cutoff = now - self.window
        with self._lock:
            hits = self._hits[key]
            # Clean old entries
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def prune(self) -> int:
        cutoff = now_utc() - self.window
        with self._lock:
            stale = [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
            for k in stale:
                del self._hits[k]
        return len(stale)


class NoopRateLimiter(RateLimiter):
    """Used when RATE_LIMIT_ENABLED is false."""

    def hit(self, key: str) -> bool:
        return True
