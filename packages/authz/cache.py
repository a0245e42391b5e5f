"""Effective-permission cache.

Optional, bounded-staleness cache of each user's permission ids. Entries
expire after a TTL and are dropped by any role, permission or assignment
change made through the engine. A generation counter keeps a load that
raced with an invalidation from being stored.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """Cached permission ids of one user."""

    user_id: int
    permission_ids: frozenset[int]
    created_at: float = Field(default_factory=time.monotonic)
    expires_at: float
    hit_count: int = 0


class CacheStats(BaseModel):
    """Cache statistics."""

    total_entries: int = 0
    total_hits: int = 0
    total_misses: int = 0
    invalidations: int = 0
    hit_rate: float = 0.0


class PermissionCache:
    """Thread-safe TTL cache keyed by user id."""

    def __init__(
        self,
        ttl_seconds: float = 30,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[int, CacheEntry] = {}
        self._lock = threading.Lock()
        self._generation = 0

        # Stats
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    @property
    def generation(self) -> int:
        """Read before loading from the store; pass to ``put``."""
        return self._generation

    def get(self, user_id: int) -> frozenset[int] | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is not None:
                if entry.expires_at > self._clock():
                    entry.hit_count += 1
                    self._hits += 1
                    return entry.permission_ids
                del self._entries[user_id]
            self._misses += 1
            return None

    def put(self, user_id: int, permission_ids: Iterable[int], generation: int) -> bool:
        """Store a load unless the cache was invalidated since it started.

        Returns:
            True if stored
        """
        with self._lock:
            if generation != self._generation:
                return False
            now = self._clock()
            self._evict_if_needed(now)
            self._entries[user_id] = CacheEntry(
                user_id=user_id,
                permission_ids=frozenset(permission_ids),
                created_at=now,
                expires_at=now + self.ttl_seconds,
            )
            return True

    def invalidate(self, user_id: int | None = None) -> None:
        """Drop one user's entry, or everything when ``user_id`` is None."""
        with self._lock:
            self._generation += 1
            self._invalidations += 1
            if user_id is None:
                self._entries.clear()
            else:
                self._entries.pop(user_id, None)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                total_entries=len(self._entries),
                total_hits=self._hits,
                total_misses=self._misses,
                invalidations=self._invalidations,
                hit_rate=self._hits / total if total else 0.0,
            )

    def _evict_if_needed(self, now: float) -> None:
        if len(self._entries) < self.max_entries:
            return

        # Remove expired entries first
        expired = [
            key for key, entry in self._entries.items()
            if entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]

        # If still full, remove the oldest
        if len(self._entries) >= self.max_entries:
            oldest = sorted(self._entries.values(), key=lambda e: e.created_at)
            for entry in oldest[: len(self._entries) - self.max_entries + 1]:
                del self._entries[entry.user_id]
