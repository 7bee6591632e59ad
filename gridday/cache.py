"""
In-memory TTL cache for leaderboard responses.

Only derived, public data lives here. Solutions and puzzle metadata are always
recomputed from the day number and never cached.
"""

import time
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

# weekly boards for day D cover D-6..D, so a new result on day D touches these
_WEEKLY_SPAN = 7


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class MemoryCache:
    """Thread-safe in-memory cache with per-entry TTL"""

    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and time.time() > entry.expires_at:
                del self._cache[key]
                self._stats['evictions'] += 1
                entry = None
            if entry is None:
                self._stats['misses'] += 1
                return None
            self._stats['hits'] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float = 300) -> None:
        with self._lock:
            self._cache[key] = CacheEntry(value=value, expires_at=time.time() + ttl_seconds)
            self._stats['sets'] += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._stats['evictions'] += len(self._cache)
            self._cache.clear()

    def cleanup_expired(self) -> int:
        """Drop expired entries, return how many were removed"""
        with self._lock:
            now = time.time()
            expired = [k for k, e in self._cache.items() if now > e.expires_at]
            for k in expired:
                del self._cache[k]
            self._stats['evictions'] += len(expired)
            return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._stats['hits'] + self._stats['misses']
            return {
                **self._stats,
                'total_requests': total,
                'hit_rate_percent': round(self._stats['hits'] / total * 100, 2) if total else 0,
                'cache_size': len(self._cache),
            }


_cache = MemoryCache()


def get_cache() -> MemoryCache:
    return _cache


def _leaderboard_key(scope: str, day_id: int, limit: int) -> str:
    return f"leaderboard:{scope}:{day_id}:{limit}"


def cache_leaderboard(scope: str, day_id: int, limit: int, entries: list, ttl_minutes: int = 5) -> None:
    _cache.set(_leaderboard_key(scope, day_id, limit), entries, ttl_minutes * 60)


def get_cached_leaderboard(scope: str, day_id: int, limit: int) -> Optional[list]:
    return _cache.get(_leaderboard_key(scope, day_id, limit))


def invalidate_leaderboards(day_id: int) -> int:
    """Drop every cached board a new result for day_id can change."""
    daily_prefix = f"leaderboard:daily:{day_id}:"
    weekly_prefixes = tuple(f"leaderboard:weekly:{d}:" for d in range(day_id, day_id + _WEEKLY_SPAN))
    with _cache._lock:
        stale = [k for k in _cache._cache if k.startswith(daily_prefix) or k.startswith(weekly_prefixes)]
        for k in stale:
            _cache.delete(k)
    return len(stale)
