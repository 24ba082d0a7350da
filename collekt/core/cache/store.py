"""
Collection Cache Store

Key/value store of built collections addressed by fingerprint.

Cache faults are soft: a failed read is reported as a miss carrying the
error, and failed writes or invalidations log a warning and report failure
instead of raising. The orchestrator keeps serving from providers.

Redis Key Structure:
- collekt:tokens:{kind}:{subject_id}:{filter_hash} - CacheEntry JSON (TTL: cache_ttl_seconds)
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from collekt.config import Settings, get_settings
from collekt.core.cache.compression import CompressionConfig, compress_value, decompress_value
from collekt.core.cache.keys import Fingerprint, collection_key, subject_pattern
from collekt.core.exceptions import CacheError
from collekt.models.contracts.collections import CacheEntry, SubjectKind
from collekt.models.contracts.health import ProviderHealth

logger = logging.getLogger(__name__)


@dataclass
class CacheLookup:
    """Outcome of a cache read"""

    hit: bool
    entry: CacheEntry | None = None
    error: str | None = None


@dataclass
class CacheStats:
    """Running counters for one cache store"""

    hits: int = 0
    misses: int = 0
    builds: int = 0
    errors: int = 0
    total_build_time_ms: float = 0.0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    @property
    def average_build_time_ms(self) -> float:
        return self.total_build_time_ms / self.builds if self.builds else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "builds": self.builds,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 4),
            "average_build_time_ms": round(self.average_build_time_ms, 2),
            "started_at": self.started_at.isoformat(),
        }


class CacheStore(ABC):
    """
    Abstract collection cache.

    Subclasses implement the raw ``_get``/``_set``/``_delete``/``_scan``
    primitives; encoding, statistics and soft-failure handling live here.
    """

    def __init__(self, default_ttl: int = 3600, compression: CompressionConfig | None = None):
        self.default_ttl = default_ttl
        self.compression = compression or CompressionConfig()
        self._stats = CacheStats()

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _get(self, key: str) -> str | None: ...

    @abstractmethod
    async def _set(self, key: str, value: str, ttl: int) -> None: ...

    @abstractmethod
    async def _delete(self, *keys: str) -> int: ...

    @abstractmethod
    async def _scan(self, pattern: str) -> list[str]: ...

    @abstractmethod
    async def _ping(self) -> None: ...

    async def close(self) -> None:
        """Release backend resources."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def lookup(self, fp: Fingerprint) -> CacheLookup:
        """
        Read the entry addressed by a fingerprint.

        Never raises; backend or decoding failures degrade to a miss.
        """
        key = fp.entry_key
        try:
            raw = await self._get(key)
            if raw is None:
                self._stats.misses += 1
                return CacheLookup(hit=False)
            entry = CacheEntry.model_validate(decompress_value(raw))
        except (RedisError, CacheError, ValidationError, OSError) as e:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.warning(f"Cache read failed for {key}: {e}")
            return CacheLookup(hit=False, error=str(e))

        self._stats.hits += 1
        return CacheLookup(hit=True, entry=entry)

    async def write(self, fp: Fingerprint, entry: CacheEntry, ttl: int | None = None) -> bool:
        """
        Store an entry, replacing any previous one (last writer wins).

        Args:
            fp: Fingerprint addressing the entry
            entry: Full filtered set plus build metadata
            ttl: Seconds to live; None uses the default, 0 never expires

        Returns:
            True if stored, False on backend failure
        """
        key = fp.entry_key
        ttl = self.default_ttl if ttl is None else ttl
        self._stats.builds += 1
        self._stats.total_build_time_ms += entry.metadata.build_time_ms

        try:
            result = compress_value(entry.model_dump(mode="json"), self.compression)
            await self._set(key, result.data, ttl)
        except (RedisError, OSError, TypeError, ValueError) as e:
            self._stats.errors += 1
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

        logger.debug(
            f"Cached {entry.metadata.total_items} tokens at {key}",
            extra={
                "cache_key": key,
                "compressed": result.is_compressed,
                "original_size": result.original_size,
                "stored_size": len(result.data),
            },
        )
        return True

    async def invalidate(
        self,
        subject_id: str,
        filter_hash: str,
        kind: SubjectKind | None = None,
    ) -> int:
        """
        Remove the entry of one subject+filter combination.

        Without ``kind`` the entry is removed for every subject kind.

        Returns:
            Number of entries removed (0 on failure)
        """
        kinds = [kind] if kind is not None else list(SubjectKind)
        keys = [collection_key(k, subject_id, filter_hash) for k in kinds]
        try:
            removed = await self._delete(*keys)
        except (RedisError, OSError) as e:
            self._stats.errors += 1
            logger.warning(f"Cache invalidation failed for {subject_id}: {e}")
            return 0

        logger.info(f"Invalidated {removed} cache entries for {subject_id}")
        return removed

    async def invalidate_all(self, subject_id: str) -> int:
        """
        Remove every entry of a subject across kinds and filter configurations.

        Returns:
            Number of entries removed (0 on failure)
        """
        try:
            keys = await self._scan(subject_pattern(subject_id))
            removed = await self._delete(*keys) if keys else 0
        except (RedisError, OSError) as e:
            self._stats.errors += 1
            logger.warning(f"Cache clear failed for {subject_id}: {e}")
            return 0

        logger.info(f"Cleared {removed} cache entries for {subject_id}")
        return removed

    async def health_check(self) -> ProviderHealth:
        start = time.perf_counter()
        try:
            await self._ping()
        except (RedisError, OSError) as e:
            return ProviderHealth(
                is_healthy=False,
                last_check=datetime.now(timezone.utc),
                error_message=str(e),
            )
        return ProviderHealth(
            is_healthy=True,
            last_check=datetime.now(timezone.utc),
            response_time_ms=(time.perf_counter() - start) * 1000,
        )

    def stats(self) -> CacheStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = CacheStats()


class RedisCacheStore(CacheStore):
    """Cache store backed by Redis (production)."""

    def __init__(
        self,
        redis_url: str,
        default_ttl: int = 3600,
        compression: CompressionConfig | None = None,
    ):
        super().__init__(default_ttl, compression)
        self.redis_url = redis_url
        self._redis: redis.Redis | None = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
            )
        return self._redis

    async def _get(self, key: str) -> str | None:
        r = await self._get_redis()
        return await r.get(key)

    async def _set(self, key: str, value: str, ttl: int) -> None:
        r = await self._get_redis()
        if ttl > 0:
            await r.setex(key, ttl, value)
        else:
            await r.set(key, value)

    async def _delete(self, *keys: str) -> int:
        r = await self._get_redis()
        return await r.delete(*keys)

    async def _scan(self, pattern: str) -> list[str]:
        r = await self._get_redis()
        return [key async for key in r.scan_iter(match=pattern, count=100)]

    async def _ping(self) -> None:
        r = await self._get_redis()
        await r.ping()

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a Redis SCAN glob (``*``, ``?`` and backslash escapes) into a regex."""
    parts: list[str] = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


class MemoryCacheStore(CacheStore):
    """In-process cache store for tests and local development."""

    def __init__(self, default_ttl: int = 3600, compression: CompressionConfig | None = None):
        super().__init__(default_ttl, compression)
        # key -> (value, expires_at monotonic or None)
        self._data: dict[str, tuple[str, float | None]] = {}

    def _expired(self, key: str) -> bool:
        _, expires_at = self._data[key]
        return expires_at is not None and time.monotonic() >= expires_at

    async def _get(self, key: str) -> str | None:
        if key not in self._data:
            return None
        if self._expired(key):
            del self._data[key]
            return None
        return self._data[key][0]

    async def _set(self, key: str, value: str, ttl: int) -> None:
        expires_at = time.monotonic() + ttl if ttl > 0 else None
        self._data[key] = (value, expires_at)

    async def _delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    async def _scan(self, pattern: str) -> list[str]:
        matcher = glob_to_regex(pattern)
        return [
            key for key in list(self._data)
            if matcher.fullmatch(key) and not self._expired(key)
        ]

    async def _ping(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._data)


def create_cache_store(settings: Settings | None = None) -> CacheStore:
    """Build the cache store selected by configuration."""
    settings = settings or get_settings()
    compression = CompressionConfig(
        enabled=settings.compression_enabled,
        threshold=settings.compression_threshold_bytes,
        level=settings.compression_level,
    )
    if settings.cache_backend == "memory":
        logger.info("Using in-memory cache store")
        return MemoryCacheStore(settings.cache_ttl_seconds, compression)

    logger.info("Using Redis cache store")
    return RedisCacheStore(settings.redis_url, settings.cache_ttl_seconds, compression)
