"""Rolling one-minute request budget for the generative provider."""

from collections import deque
from datetime import datetime, timedelta
from threading import Lock
from typing import Deque

from utils.cache_service import Clock, utc_now
from utils.error_handling import RateLimitExceeded

WINDOW = timedelta(minutes=1)


class RateLimiter:
    """Counts granted requests over the last minute. Never waits or retries."""

    def __init__(self, limit_per_minute: int, clock: Clock = utc_now, name: str = "provider"):
        self.limit = limit_per_minute
        self.name = name
        self._clock = clock
        self._granted: Deque[datetime] = deque()
        self._lock = Lock()

    def _prune(self, now: datetime) -> None:
        while self._granted and now - self._granted[0] >= WINDOW:
            self._granted.popleft()

    def acquire(self) -> None:
        """Take one slot or raise RateLimitExceeded."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._granted) >= self.limit:
                raise RateLimitExceeded(
                    f"{self.name} rate limit of {self.limit}/min exceeded",
                    provider=self.name,
                )
            self._granted.append(now)

    def state(self) -> dict:
        with self._lock:
            self._prune(self._clock())
            used = len(self._granted)
        return {
            "limit_per_minute": self.limit,
            "used": used,
            "remaining": max(0, self.limit - used),
        }
