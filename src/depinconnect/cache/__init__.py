"""Shared result cache."""

from depinconnect.cache.store import CacheOutcome, CacheStats, CacheStore, make_cache_key

__all__ = ["CacheOutcome", "CacheStats", "CacheStore", "make_cache_key"]
