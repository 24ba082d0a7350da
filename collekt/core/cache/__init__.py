"""
Collection cache: key builders, value compression and store backends.
"""

from collekt.core.cache.keys import Fingerprint, collection_key, fingerprint, subject_pattern
from collekt.core.cache.store import (
    CacheLookup,
    CacheStats,
    CacheStore,
    MemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
)

__all__ = [
    "CacheLookup",
    "CacheStats",
    "CacheStore",
    "Fingerprint",
    "MemoryCacheStore",
    "RedisCacheStore",
    "collection_key",
    "create_cache_store",
    "fingerprint",
    "subject_pattern",
]
