"""
Unit tests for the collection cache store.

Covers the in-memory backend end to end and the Redis backend against a
mocked client.
"""

import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from collekt.core.cache import MemoryCacheStore, RedisCacheStore, fingerprint
from collekt.core.cache.compression import CompressionConfig
from collekt.core.cache.keys import collection_key
from collekt.models.contracts.collections import (
    CacheEntry,
    CacheEntryMetadata,
    CacheSource,
    SubjectKind,
)
from collekt.models.contracts.filters import TokenFilters
from collekt.models.contracts.tokens import UnifiedToken
from tests.conftest import CONTRACT, OTHER_WALLET, WALLET, make_tokens


def make_entry(tokens=None, build_time_ms: float = 123.0, projected: bool = False) -> CacheEntry:
    tokens = tokens if tokens is not None else make_tokens(3)
    return CacheEntry(
        projected=projected,
        tokens=tokens,
        metadata=CacheEntryMetadata(
            built_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
            build_time_ms=build_time_ms,
            total_items=len(tokens),
            filter_config_hash="hash",
            source=CacheSource.API,
            providers=["tzkt"],
        ),
    )


class TestMemoryCacheStore:
    """Tests for the in-memory backend."""

    async def test_miss_then_hit_round_trip(self, memory_store):
        """A written entry is returned intact, including its build time."""
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)

        miss = await memory_store.lookup(fp)
        assert miss.hit is False
        assert miss.error is None

        entry = make_entry(build_time_ms=456.7)
        assert await memory_store.write(fp, entry) is True

        hit = await memory_store.lookup(fp)
        assert hit.hit is True
        assert hit.entry.metadata.build_time_ms == 456.7
        assert [t.id for t in hit.entry.tokens] == [t.id for t in entry.tokens]
        assert isinstance(hit.entry.tokens[0], UnifiedToken)

    async def test_round_trip_with_compression(self):
        store = MemoryCacheStore(compression=CompressionConfig(threshold=0))
        fp = fingerprint(SubjectKind.CONTRACT, CONTRACT, TokenFilters(), 1, 20)
        entry = make_entry(make_tokens(50))

        await store.write(fp, entry)
        raw, _ = store._data[fp.entry_key]
        assert raw.startswith("H4sI")

        hit = await store.lookup(fp)
        assert hit.hit is True
        assert len(hit.entry.tokens) == 50

    async def test_projected_tokens_round_trip_as_dicts(self, memory_store):
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(select_fields=("id",)), 1, 20)
        entry = make_entry([{"id": "a"}, {"id": "b"}], projected=True)

        await memory_store.write(fp, entry)
        hit = await memory_store.lookup(fp)

        assert hit.entry.tokens == [{"id": "a"}, {"id": "b"}]

    async def test_projection_with_every_token_field_stays_a_dict(self, memory_store):
        full = make_tokens(1)[0].model_dump(mode="json")
        projection = {
            name: full[name]
            for name in ("id", "contract_address", "token_id", "balance", "source", "fetched_at")
        }
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(select_fields=tuple(projection)), 1, 20)

        await memory_store.write(fp, make_entry([projection], projected=True))
        hit = await memory_store.lookup(fp)

        assert hit.entry.tokens == [projection]

    async def test_ttl_expiry(self):
        store = MemoryCacheStore(default_ttl=10)
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)

        await store.write(fp, make_entry())
        value, expires_at = store._data[fp.entry_key]
        assert expires_at == pytest.approx(time.monotonic() + 10, abs=1)
        assert (await store.lookup(fp)).hit is True

        store._data[fp.entry_key] = (value, time.monotonic() - 1)

        assert (await store.lookup(fp)).hit is False
        assert fp.entry_key not in store._data

    async def test_zero_ttl_never_expires(self):
        store = MemoryCacheStore(default_ttl=0)
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)
        await store.write(fp, make_entry())

        assert store._data[fp.entry_key][1] is None

    async def test_invalidate_removes_only_matching_filter(self, memory_store):
        """Invalidating one filter configuration leaves other entries alone."""
        active = TokenFilters(require_metadata=True)
        other = TokenFilters(require_image=True)
        fp_active = fingerprint(SubjectKind.ADDRESS, WALLET, active, 1, 20)
        fp_other = fingerprint(SubjectKind.ADDRESS, WALLET, other, 1, 20)
        await memory_store.write(fp_active, make_entry())
        await memory_store.write(fp_other, make_entry())

        removed = await memory_store.invalidate(WALLET, active.filter_hash())

        assert removed == 1
        assert (await memory_store.lookup(fp_active)).hit is False
        assert (await memory_store.lookup(fp_other)).hit is True

    async def test_invalidate_all_spans_filters_and_kinds(self, memory_store):
        subject = WALLET
        for kind in (SubjectKind.ADDRESS, SubjectKind.CONTRACT):
            for filters in (TokenFilters(), TokenFilters(require_name=True)):
                await memory_store.write(fingerprint(kind, subject, filters, 1, 20), make_entry())
        unrelated = fingerprint(SubjectKind.ADDRESS, CONTRACT, TokenFilters(), 1, 20)
        await memory_store.write(unrelated, make_entry())

        removed = await memory_store.invalidate_all(subject)

        assert removed == 4
        assert (await memory_store.lookup(unrelated)).hit is True

    @pytest.mark.parametrize("subject", ["*", "tz1*", "tz1?SUr8wwNhLAzempoch5d6hLRiTh8Cjcjb", "[t]z1*"])
    async def test_invalidate_all_matches_subject_literally(self, memory_store, subject):
        for wallet in (WALLET, OTHER_WALLET):
            await memory_store.write(fingerprint(SubjectKind.ADDRESS, wallet, TokenFilters(), 1, 20), make_entry())

        assert await memory_store.invalidate_all(subject) == 0
        assert len(memory_store) == 2

    async def test_invalidate_all_with_glob_characters_in_subject(self, memory_store):
        literal = fingerprint(SubjectKind.ADDRESS, "a*b", TokenFilters(), 1, 20)
        lookalike = fingerprint(SubjectKind.ADDRESS, "axxb", TokenFilters(), 1, 20)
        await memory_store.write(literal, make_entry())
        await memory_store.write(lookalike, make_entry())

        assert await memory_store.invalidate_all("a*b") == 1
        assert (await memory_store.lookup(lookalike)).hit is True

    async def test_corrupt_value_degrades_to_miss(self, memory_store):
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)
        memory_store._data[fp.entry_key] = ("{not json", None)

        result = await memory_store.lookup(fp)

        assert result.hit is False
        assert result.error is not None
        assert memory_store.stats().errors == 1

    async def test_stats_counters(self, memory_store):
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)
        await memory_store.lookup(fp)
        await memory_store.write(fp, make_entry(build_time_ms=100.0))
        await memory_store.write(fp, make_entry(build_time_ms=200.0))
        await memory_store.lookup(fp)

        stats = memory_store.stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.builds == 2
        assert stats.hit_rate == 0.5
        assert stats.average_build_time_ms == 150.0
        assert stats.to_dict()["hit_rate"] == 0.5

    async def test_health_check(self, memory_store):
        health = await memory_store.health_check()
        assert health.is_healthy is True


class TestRedisCacheStore:
    """Tests for the Redis backend with a mocked client."""

    @pytest.fixture
    def mock_redis(self):
        """Create a mock Redis instance."""
        redis = AsyncMock()
        redis.get = AsyncMock(return_value=None)
        redis.set = AsyncMock()
        redis.setex = AsyncMock()
        redis.delete = AsyncMock(return_value=1)
        redis.ping = AsyncMock()
        redis.aclose = AsyncMock()
        return redis

    @pytest.fixture
    def store(self, mock_redis):
        """Create a Redis store with mocked Redis."""
        store = RedisCacheStore("redis://localhost:6379/0", default_ttl=3600)
        store._redis = mock_redis
        return store

    async def test_write_uses_setex_with_ttl(self, store, mock_redis):
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)

        assert await store.write(fp, make_entry()) is True

        mock_redis.setex.assert_called_once()
        key, ttl, _ = mock_redis.setex.call_args[0]
        assert key == fp.entry_key
        assert ttl == 3600

    async def test_write_without_ttl_uses_set(self, store, mock_redis):
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)

        await store.write(fp, make_entry(), ttl=0)

        mock_redis.set.assert_called_once()
        mock_redis.setex.assert_not_called()

    async def test_lookup_connection_error_is_soft(self, store, mock_redis):
        """Redis failures surface as a miss carrying the error."""
        mock_redis.get.side_effect = RedisConnectionError("connection refused")
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)

        result = await store.lookup(fp)

        assert result.hit is False
        assert "connection refused" in result.error

    async def test_write_failure_returns_false(self, store, mock_redis):
        mock_redis.setex.side_effect = RedisConnectionError("down")
        fp = fingerprint(SubjectKind.ADDRESS, WALLET, TokenFilters(), 1, 20)

        assert await store.write(fp, make_entry()) is False
        assert store.stats().errors == 1

    async def test_invalidate_deletes_key_for_every_kind(self, store, mock_redis):
        mock_redis.delete.return_value = 1

        removed = await store.invalidate(WALLET, "hash")

        assert removed == 1
        keys = mock_redis.delete.call_args[0]
        assert set(keys) == {collection_key(kind, WALLET, "hash") for kind in SubjectKind}

    async def test_invalidate_all_scans_subject_pattern(self, store, mock_redis):
        keys = [
            collection_key(SubjectKind.ADDRESS, WALLET, "a"),
            collection_key(SubjectKind.ADDRESS, WALLET, "b"),
        ]

        async def scan_iter(match, count):
            assert match == f"collekt:tokens:*:{WALLET}:*"
            for key in keys:
                yield key

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)
        mock_redis.delete.return_value = 2

        removed = await store.invalidate_all(WALLET)

        assert removed == 2
        mock_redis.delete.assert_called_once_with(*keys)

    async def test_invalidate_all_escapes_glob_characters(self, store, mock_redis):
        patterns = []

        async def scan_iter(match, count):
            patterns.append(match)
            return
            yield

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)

        assert await store.invalidate_all("tz1*") == 0
        assert patterns == ["collekt:tokens:*:tz1\\*:*"]

    async def test_invalidate_all_with_no_keys(self, store, mock_redis):
        async def scan_iter(match, count):
            return
            yield

        mock_redis.scan_iter = MagicMock(side_effect=scan_iter)

        assert await store.invalidate_all(WALLET) == 0
        mock_redis.delete.assert_not_called()

    async def test_health_check_failure(self, store, mock_redis):
        mock_redis.ping.side_effect = RedisConnectionError("down")

        health = await store.health_check()

        assert health.is_healthy is False
        assert health.error_message == "down"

    async def test_close(self, store, mock_redis):
        await store.close()
        mock_redis.aclose.assert_called_once()
        assert store._redis is None
