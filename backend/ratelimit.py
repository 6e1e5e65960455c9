import threading
import time
from typing import Callable


class FixedWindowLimiter:
    """Per-key request counter over fixed windows, held in process memory.

    Every attempt counts, successful or not.
    """

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> bool:
        """Record an attempt for ``key``; False once the window's limit is exceeded."""
        now = self._clock()
        with self._lock:
            started, count = self._hits.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._hits[key] = (started, count)
            if len(self._hits) > 10000:
                self._prune(now)
            return count <= self.limit

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def _prune(self, now: float) -> None:
        expired = [k for k, (started, _) in self._hits.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._hits[k]
