"""
Per-caller request rate limiting.

Sliding one-minute window keyed by caller identity. Keys whose window
has emptied are dropped, so the table only holds recently active callers.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from .errors import RateLimited

WINDOW_SECONDS = 60.0
DEFAULT_REQUESTS_PER_MINUTE = 60


class RateLimiter:
    """Allow at most `limit` requests per key within the window."""

    def __init__(
        self,
        limit: int = DEFAULT_REQUESTS_PER_MINUTE,
        window: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, key: str) -> None:
        """Count one request for key.

        Raises:
            RateLimited: If key already used its allowance in this window
        """
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            self._prune(hits, now)
            if len(hits) >= self.limit:
                retry_after = self.window - (now - hits[0])
                raise RateLimited(
                    f"Too many requests for {key}, please try again later.",
                    retry_after=retry_after
                )
            hits.append(now)

    def _prune(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        """Drop every key with no hits left in the window."""
        for key in list(self._hits):
            hits = self._hits[key]
            self._prune(hits, now)
            if not hits:
                del self._hits[key]
        self._last_sweep = now

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)
