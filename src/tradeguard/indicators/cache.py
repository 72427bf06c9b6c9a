"""TTL cache for indicator snapshots keyed by (symbol, timeframe).

Callers own the cache and pass it where needed; engines never read it.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional


logger = logging.getLogger(__name__)

_MISSING = object()


class IndicatorCache:
    """Thread-safe time-to-live cache.

    Args:
        ttl_seconds: Lifetime of an entry (default 30)
        clock: Monotonic time source in seconds; injectable for tests
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[tuple, tuple] = {}  # (symbol, timeframe) -> (value, stored_at)
        self._lock = threading.Lock()

    def get(self, symbol: str, timeframe: str, default: Any = None) -> Optional[Any]:
        """Cached value, or default when absent or expired."""
        key = (symbol, timeframe)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, stored_at = entry
            if not self._is_fresh(stored_at):
                del self._entries[key]
                return default
            return value

    def set(self, symbol: str, timeframe: str, value: Any) -> None:
        with self._lock:
            self._entries[(symbol, timeframe)] = (value, self._clock())

    def get_or_compute(self, symbol: str, timeframe: str, factory: Callable[[], Any]) -> Any:
        """Return the cached value or compute, store and return a fresh one.

        factory runs outside the lock, so two callers racing on a cold key
        may both compute; the last write wins. A cached None counts as a hit.
        """
        value = self.get(symbol, timeframe, _MISSING)
        if value is not _MISSING:
            return value
        value = factory()
        self.set(symbol, timeframe, value)
        return value

    def invalidate(self, symbol: Optional[str] = None) -> None:
        """Drop entries for symbol, or everything."""
        with self._lock:
            if symbol:
                for key in [k for k in self._entries if k[0] == symbol]:
                    del self._entries[key]
            else:
                self._entries.clear()

    def purge_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            stale = [k for k, (_, stored_at) in self._entries.items() if not self._is_fresh(stored_at)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug(f"Purged {len(stale)} expired indicator entries")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_fresh(self, stored_at: float) -> bool:
        return self._clock() - stored_at < self.ttl
