"""
Result cache for the ClearView classifier client.

Keeps recent classifications keyed by fingerprint so repeated posts skip
the network.  Entries expire after ``ttl_seconds`` and the least recently
used entry is evicted once ``max_entries`` is reached.  Degraded
(failed-open) and abandoned results are never stored.
"""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from clearview.config import get_settings
from clearview.exceptions import ConfigurationError
from clearview.models import ClassificationResult

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """A single cached classification.

    Attributes:
        result: The cached result.
        created_at: UTC timestamp when the entry was stored.
        expires_at: UTC timestamp when the entry becomes stale.
        access_count: Number of times this entry has been served.
    """

    result: ClassificationResult
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    access_count: int = 0


class CacheStats(BaseModel):
    """Aggregate cache statistics.

    Attributes:
        hits: Total cache hit count.
        misses: Total cache miss count.
        hit_rate: Ratio of hits to total lookups (0.0 if no lookups).
        entry_count: Current number of entries in the cache.
        evictions: Entries dropped to make room for new ones.
    """

    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    entry_count: int = 0
    evictions: int = 0


class ResultCache:
    """In-memory LRU cache of classification results with TTL expiration.

    Args:
        ttl_seconds: Time-to-live for entries.  Defaults to settings.
        max_entries: Capacity before LRU eviction.  Defaults to settings.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
    ) -> None:
        if ttl_seconds is None:
            ttl_seconds = get_settings().cache.ttl_seconds
        if max_entries is None:
            max_entries = get_settings().cache.max_entries
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        if self._max_entries < 1:
            raise ConfigurationError("max_entries must be at least 1")

        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits: int = 0
        self._misses: int = 0
        self._evictions: int = 0

    def get(self, fingerprint: str) -> Optional[ClassificationResult]:
        """Look up a cached result.

        Expired entries are deleted and counted as misses.  A hit marks
        the entry as most recently used.
        """
        entry = self._store.get(fingerprint)
        if entry is None:
            self._misses += 1
            return None

        if datetime.now(timezone.utc) >= entry.expires_at:
            del self._store[fingerprint]
            self._misses += 1
            logger.debug("Cache entry expired", extra={"fingerprint": fingerprint[:8]})
            return None

        self._store.move_to_end(fingerprint)
        entry.access_count += 1
        self._hits += 1
        logger.debug(
            "Cache hit",
            extra={"fingerprint": fingerprint[:8], "cache_size": len(self._store)},
        )
        return entry.result

    def set(self, result: ClassificationResult) -> bool:
        """Store *result* under its fingerprint.

        Returns:
            ``False`` if the result was not cached because it failed open
            or was abandoned before the classifier answered.
        """
        if result.failed_open or result.abandoned:
            return False

        key = result.fingerprint
        if key in self._store:
            del self._store[key]
        elif len(self._store) >= self._max_entries:
            evicted, _ = self._store.popitem(last=False)
            self._evictions += 1
            logger.debug("Cache evicted LRU entry", extra={"fingerprint": evicted[:8]})

        now = datetime.now(timezone.utc)
        self._store[key] = CacheEntry(
            result=result,
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        return True

    def invalidate(self, fingerprint: str) -> bool:
        """Remove one entry.  Returns ``True`` if it existed."""
        return self._store.pop(fingerprint, None) is not None

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries removed.
        """
        count = len(self._store)
        self._store.clear()
        logger.info("Result cache cleared", extra={"entries_removed": count})
        return count

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total > 0 else 0.0,
            entry_count=len(self._store),
            evictions=self._evictions,
        )

    @property
    def size(self) -> int:
        """Current number of entries in the cache."""
        return len(self._store)
