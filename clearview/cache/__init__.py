"""Classification result caching."""

from clearview.cache.results import CacheEntry, CacheStats, ResultCache

__all__ = ["CacheEntry", "CacheStats", "ResultCache"]
