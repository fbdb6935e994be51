"""Sliding window rate limiting for the unauthenticated account endpoints."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque, Protocol


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


class SlidingWindowRateLimiter:
    """Thread-safe in-process sliding window limiter keyed by arbitrary strings."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("rate limit and window must be positive")
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._events: defaultdict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        """Record an attempt for ``key`` and return ``False`` once the window is full."""
        now = self._clock()
        with self._lock:
            queue = self._events[key]
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                return False
            queue.append(now)
            return True
