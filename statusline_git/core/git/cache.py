"""In-memory TTL cache for Git query results"""
import time
from typing import Any, Callable, Dict, Optional

from statusline_git.core.config import GitCacheConfig
from statusline_git.infrastructure.metrics import git_cache_requests_total

from .git_types import CacheEntry, GitCacheKey, GitCacheStats

Clock = Callable[[], float]


class GitCache:
    """
    Keyed store with per-entry expiry, owned by one service instance

    Entries are never mutated; `set` replaces an entry wholesale, so readers
    never observe a partially written value. An expired entry behaves
    exactly like one that was never set.
    """

    # Categories whose caching can be switched off in cache_types
    _TYPE_FLAGS = {
        GitCacheKey.BRANCH_INFO: 'branch',
        GitCacheKey.WORKING_STATUS: 'status',
        GitCacheKey.VERSION_INFO: 'version',
        GitCacheKey.STASH_INFO: 'stash',
    }

    def __init__(self, config: Optional[GitCacheConfig] = None, clock: Optional[Clock] = None):
        self.config = config or GitCacheConfig()
        self._clock = clock or time.monotonic
        self._entries: Dict[GitCacheKey, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def configure(self, config: GitCacheConfig) -> None:
        self.config = config
        if not config.enabled:
            self._entries.clear()

    def get(self, key: GitCacheKey) -> Optional[Any]:
        """
        Get cached data

        Returns:
            The cached value, or None when absent, expired or disabled
        """
        entry = self._valid_entry(key)
        if entry is None:
            self._misses += 1
            git_cache_requests_total.labels(key=key.value, result='miss').inc()
            return None

        self._hits += 1
        git_cache_requests_total.labels(key=key.value, result='hit').inc()
        return entry.data

    def set(self, key: GitCacheKey, data: Any, ttl_ms: Optional[int] = None) -> None:
        """
        Store data under a key

        Args:
            key: Cache key
            data: Value to cache; None is never stored
            ttl_ms: Lifetime in milliseconds, defaults to the configured duration
        """
        if not self.config.enabled or data is None or not self._should_cache(key):
            return

        duration_ms = self.config.duration_ms if ttl_ms is None else ttl_ms
        now = self._clock()
        self._entries[key] = CacheEntry(
            data=data,
            created_at=now,
            expires_at=now + duration_ms / 1000,
        )

    def has(self, key: GitCacheKey) -> bool:
        return self._valid_entry(key) is not None

    def entry(self, key: GitCacheKey) -> Optional[CacheEntry]:
        """Current entry for a key, without touching the hit/miss counters"""
        return self._valid_entry(key)

    def delete(self, key: GitCacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def stats(self) -> GitCacheStats:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if not entry.is_expired(now))
        total_requests = self._hits + self._misses

        return GitCacheStats(
            total_items=len(self._entries),
            valid_items=valid,
            expired_items=len(self._entries) - valid,
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total_requests if total_requests else 0.0,
        )

    def _valid_entry(self, key: GitCacheKey) -> Optional[CacheEntry]:
        if not self.config.enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry

    def _should_cache(self, key: GitCacheKey) -> bool:
        flag = self._TYPE_FLAGS.get(key)
        if flag is None:
            return True  # operation status and the full aggregate
        return getattr(self.config.cache_types, flag)
