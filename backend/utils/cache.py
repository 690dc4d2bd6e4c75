"""
TTL Cache - small in-process key/value store with expiry

Injected into services that need read-through caching (PlatformRegistry).
Entries are whole objects swapped under a lock, so a reader sees either the
old or the new value, never a partially-updated one.
"""
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional


class TTLCache:
    """Simple TTL cache with max size limit and hit/miss counters."""

    def __init__(self, maxsize: int = 500, ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self._cache: Dict[Hashable, tuple] = {}
        self._maxsize = maxsize
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                value, expires_at = entry
                if self._clock() < expires_at:
                    self._hits += 1
                    return value
                del self._cache[key]
            self._misses += 1
            return None

    def peek(self, key: Hashable) -> Optional[Any]:
        """Like get(), but does not touch the hit/miss counters."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                return None
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            # Evict the entry closest to expiry if at capacity
            if key not in self._cache and len(self._cache) >= self._maxsize:
                oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]
            self._cache[key] = (value, self._clock() + self._ttl)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'size': len(self._cache),
                'maxsize': self._maxsize,
                'ttl': self._ttl,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': round(self._hits / lookups, 4) if lookups else None,
            }
