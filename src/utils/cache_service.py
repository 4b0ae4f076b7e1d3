"""
In-memory caches shared by concurrent pipeline runs.

LRUCache backs the retrieval result cache (size bound, oldest entry goes
first). TimeWindowCache backs duplicate detection (entries older than the
window are dropped lazily whenever the cache is touched).
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Callable, Iterator, List, Optional, Tuple

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LRUCache:
    """Thread-safe LRU cache with optional TTL support."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: Optional[int] = None,
        clock: Clock = utc_now,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: "OrderedDict[str, tuple[Any, datetime]]" = OrderedDict()
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if exists and not expired."""
        with self._lock:
            if key not in self._cache:
                return None

            value, timestamp = self._cache[key]

            if self.ttl_seconds is not None and (
                self._clock() - timestamp > timedelta(seconds=self.ttl_seconds)
            ):
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> None:
        """Set value in cache, evicting the oldest entries past max_size."""
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            self._cache[key] = (value, self._clock())
            self._evict_locked()

    def _evict_locked(self) -> int:
        removed = 0
        if self.ttl_seconds is not None:
            cutoff = self._clock() - timedelta(seconds=self.ttl_seconds)
            for key in [k for k, (_, ts) in self._cache.items() if ts < cutoff]:
                del self._cache[key]
                removed += 1
        while len(self._cache) > self.max_size:
            self._cache.popitem(last=False)
            removed += 1
        return removed

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> dict:
        """Return cache statistics."""
        with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
            }


class TimeWindowCache:
    """
    Thread-safe map whose entries live for a fixed window.

    Cleanup is lazy: expired entries are removed on the next snapshot/set call,
    so under no traffic stale entries can linger until someone asks.
    """

    def __init__(self, window_seconds: int, max_size: int = 5000, clock: Clock = utc_now):
        self.window = timedelta(seconds=window_seconds)
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[Any, datetime]]" = OrderedDict()
        self._lock = Lock()

    def snapshot(self) -> List[Tuple[str, Any]]:
        """Evict expired entries and return the live ones, oldest first."""
        with self._lock:
            self._evict_locked()
            return [(key, value) for key, (value, _) in self._entries.items()]

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (value, self._clock())
            self._evict_locked()

    def compare_and_add(
        self, key: str, value: Any, compare: Callable[[str, Any], Optional[Any]]
    ) -> List[Any]:
        """
        Run ``compare`` against every live entry, then store ``value`` under
        ``key``, all under one lock. Returns the non-None compare results.

        Two callers racing with similar values always see each other in one
        direction or the other.
        """
        with self._lock:
            self._evict_locked()
            found = []
            for cached_key, (cached_value, _) in self._entries.items():
                result = compare(cached_key, cached_value)
                if result is not None:
                    found.append(result)
            self._entries.pop(key, None)
            self._entries[key] = (value, self._clock())
            self._evict_locked()
        return found

    def _evict_locked(self) -> int:
        cutoff = self._clock() - self.window
        removed = 0
        # Insertion order is timestamp order, so stop at the first live entry.
        while self._entries:
            key, (_, timestamp) = next(iter(self._entries.items()))
            if timestamp >= cutoff and len(self._entries) <= self.max_size:
                break
            del self._entries[key]
            removed += 1
        return removed

    def __iter__(self) -> Iterator[str]:
        return iter([key for key, _ in self.snapshot()])

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
