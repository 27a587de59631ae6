"""In-memory cache with per-entry TTL and LRU eviction.

The cache sits in front of the filesystem and is never a source of truth:
an expired or evicted entry behaves exactly like one that was never cached.
It is not thread-safe; the stores that use it run single-threaded.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, Pattern, TypeVar, Union

from .constants import DEFAULT_CACHE_MAX_SIZE, DEFAULT_CACHE_TTL_SECONDS

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    created_at: float
    expires_at: float
    access_count: int = 0
    last_accessed_at: float = 0.0


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    evictions: int
    hit_rate: float


class Cache(Generic[T]):
    """Keyed store with TTL expiry, LRU eviction and hit/miss statistics.

    Parameters
    ----------
    default_ttl:
        Lifetime in seconds for entries set without an explicit ``ttl``.
    max_size:
        Entry cap; inserting a new key at the cap evicts the least recently
        accessed entry.
    track_stats:
        Count hits, misses and evictions.
    clock:
        Monotonic time source in seconds. Tests pass a fake clock.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_CACHE_TTL_SECONDS,
        max_size: int = DEFAULT_CACHE_MAX_SIZE,
        track_stats: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max(1, int(max_size))
        self.track_stats = track_stats
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def keys(self) -> Iterator[str]:
        return iter(list(self._entries))

    # -- reads --------------------------------------------------------------

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            self._miss()
            return None
        now = self._clock()
        if now >= entry.expires_at:
            del self._entries[key]
            self._miss()
            return None
        entry.access_count += 1
        entry.last_accessed_at = now
        if self.track_stats:
            self._hits += 1
        return entry.value

    def has(self, key: str) -> bool:
        """True if *key* holds a live entry. Does not touch statistics."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return False
        return True

    def get_or_set(self, key: str, factory: Callable[[], T], ttl: Optional[float] = None) -> T:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value, ttl)
        return value

    # -- writes -------------------------------------------------------------

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()
        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            expires_at=now + (self.default_ttl if ttl is None else ttl),
            last_accessed_at=now,
        )

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._entries if k.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def invalidate(self, pattern: Union[str, Pattern[str]]) -> int:
        """Remove every key matching the regex *pattern*."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        doomed = [k for k in self._entries if regex.search(k)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def prune(self) -> int:
        now = self._clock()
        doomed = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    # -- statistics ---------------------------------------------------------

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._entries),
            evictions=self._evictions,
            hit_rate=self._hits / total if total else 0.0,
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # -- internal -----------------------------------------------------------

    def _miss(self) -> None:
        if self.track_stats:
            self._misses += 1

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries, key=lambda k: self._entries[k].last_accessed_at)
        del self._entries[oldest]
        if self.track_stats:
            self._evictions += 1


class CacheKeys:
    """Key builders, one namespace per entity kind."""

    @staticmethod
    def task(task_id: str) -> str:
        return f"task:{task_id}"

    @staticmethod
    def task_folders() -> str:
        return "task-folders"

    @staticmethod
    def artifact(task_id: str, phase: str) -> str:
        return f"artifact:{task_id}:{phase}"


class InvalidationPatterns:
    """Regexes matching every key that depends on an entity."""

    @staticmethod
    def task(task_id: str) -> Pattern[str]:
        return re.compile(rf"^task:{re.escape(task_id)}$")

    @staticmethod
    def all_tasks() -> Pattern[str]:
        return re.compile(r"^(task:|task-folders$)")

    @staticmethod
    def artifacts(task_id: str) -> Pattern[str]:
        return re.compile(rf"^artifact:{re.escape(task_id)}:")
