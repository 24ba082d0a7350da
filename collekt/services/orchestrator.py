"""
Data Orchestrator

Coordinates providers, the filter engine and the cache store to serve token
collections for three subject kinds: accounts (address), contracts and
curations.

Request flow:
1. Validate the subject and clamp pagination
2. Fingerprint (kind, subject, filters, page, page size)
3. Unless force_refresh, serve the page from the cached entry
4. On a miss, build the entry once per entry key (concurrent identical
   requests share the build): fetch from providers by priority with
   fallback, sort address collections chronologically, filter, store
5. Paginate the full filtered set
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from collekt.config import Settings, get_settings
from collekt.core.cache import CacheStore, Fingerprint, create_cache_store, fingerprint
from collekt.core.exceptions import (
    InvalidSubjectError,
    MissingParameterError,
    OrchestrationError,
    ProviderError,
)
from collekt.core.singleflight import SingleFlight
from collekt.models.contracts.collections import (
    CacheEntry,
    CacheEntryMetadata,
    CacheInfo,
    CacheSource,
    CollectionResult,
    FilterStats,
    PaginationInfo,
    PerformanceInfo,
    SubjectKind,
)
from collekt.models.contracts.curation import CurationInfo
from collekt.models.contracts.filters import TokenFilters
from collekt.models.contracts.health import ProviderHealth
from collekt.models.contracts.tokens import UnifiedToken
from collekt.providers import DataProvider, ObjktCurationProvider, create_providers
from collekt.providers.registry import sort_providers
from collekt.services.filter_engine import apply_filters, get_filter_profile

logger = logging.getLogger(__name__)

# Error body parameter names per subject kind
SUBJECT_PARAMETERS = {
    SubjectKind.ADDRESS: "Address",
    SubjectKind.CONTRACT: "ContractAddress",
    SubjectKind.CURATION: "CurationId",
}


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def paginate(tokens: list, page: int, page_size: int) -> tuple[list, PaginationInfo]:
    """
    Slice one page out of a full result set.

    ``end_index`` is inclusive and capped at the last item, so a page past
    the end yields an empty slice with ``end_index == total_items - 1``.
    """
    total_items = len(tokens)
    total_pages = math.ceil(total_items / page_size) if total_items else 0
    start_index = (page - 1) * page_size
    stop = min(start_index + page_size, total_items)

    return tokens[start_index:stop], PaginationInfo(
        current_page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
        start_index=start_index,
        end_index=stop - 1,
    )


def sort_chronologically(tokens: list[UnifiedToken]) -> list[UnifiedToken]:
    """Oldest acquisition first, then last transfer, then contract and token id."""
    return sorted(tokens, key=lambda t: t.sort_key)


@dataclass
class _Build:
    """Result of one shared collection build."""

    entry: CacheEntry
    fetch_time_ms: float
    filter_time_ms: float
    cache_time_ms: float
    filtering: FilterStats


class DataOrchestrator:
    """
    Entry point for collection requests.

    Instances are safe to share across concurrent requests; at most one
    upstream build per entry key is in flight at a time.
    """

    def __init__(
        self,
        providers: list[DataProvider],
        cache: CacheStore,
        settings: Settings | None = None,
        default_filters: TokenFilters | None = None,
    ):
        self.settings = settings or get_settings()
        self.providers = sort_providers(providers)
        self.cache = cache
        self.default_filters = default_filters or get_filter_profile(self.settings.filter_profile)
        self._single_flight = SingleFlight()

    # ==================== PUBLIC OPERATIONS ====================

    async def get_token_collection(
        self,
        address: str | None,
        page: int = 1,
        page_size: int | None = None,
        filters: TokenFilters | None = None,
        force_refresh: bool = False,
        sort_chronologically: bool = True,
    ) -> CollectionResult:
        """Tokens held by an account, oldest acquisition first by default."""
        return await self._get_collection(
            SubjectKind.ADDRESS, address, page, page_size, filters, force_refresh, sort_chronologically
        )

    async def get_collection_token_collection(
        self,
        contract_address: str | None,
        page: int = 1,
        page_size: int | None = None,
        filters: TokenFilters | None = None,
        force_refresh: bool = False,
    ) -> CollectionResult:
        """Live tokens of a contract."""
        return await self._get_collection(
            SubjectKind.CONTRACT, contract_address, page, page_size, filters, force_refresh, False
        )

    async def get_curation_token_collection(
        self,
        curation_id: str | None,
        page: int = 1,
        page_size: int | None = None,
        filters: TokenFilters | None = None,
        force_refresh: bool = False,
    ) -> CollectionResult:
        """Tokens of a curated gallery, in curation order."""
        return await self._get_collection(
            SubjectKind.CURATION, curation_id, page, page_size, filters, force_refresh, False
        )

    async def invalidate_cache(self, subject_id: str | None, filters: TokenFilters | None = None) -> int:
        """
        Drop the entry of a subject under one filter configuration.

        The entry is removed for every subject kind, since callers typically
        only hold the identifier.
        """
        subject_id = self._require_subject(SubjectKind.ADDRESS, subject_id, check_format=False)
        filter_hash = (filters or self.default_filters).filter_hash()
        return await self.cache.invalidate(subject_id, filter_hash)

    async def clear_all_cache(self, subject_id: str | None) -> int:
        """Drop every entry of a subject across kinds and filter configurations."""
        subject_id = self._require_subject(SubjectKind.ADDRESS, subject_id, check_format=False)
        return await self.cache.invalidate_all(subject_id)

    async def get_token_count(self, address: str | None, filters: TokenFilters | None = None) -> int:
        """Upstream count of an account's holdings (unfiltered by the engine)."""
        address = self._require_subject(SubjectKind.ADDRESS, address)
        candidates = self._candidates(SubjectKind.ADDRESS)
        last_error: ProviderError | None = None
        for provider in candidates:
            try:
                return await provider.get_token_balances_count(address, filters)
            except ProviderError as e:
                last_error = e
                logger.warning(f"Provider {provider.name} failed to count tokens for {address}: {e}")
        raise self._terminal_error(f"Failed to count tokens for {address}", last_error)

    async def get_curation_info(self, curation_id: str | None) -> CurationInfo:
        """Display metadata of a curation from the first curation provider."""
        curation_id = self._require_subject(SubjectKind.CURATION, curation_id)
        last_error: ProviderError | None = None
        for provider in self._candidates(SubjectKind.CURATION):
            if not isinstance(provider, ObjktCurationProvider):
                continue
            try:
                return await provider.get_curation_metadata(curation_id)
            except ProviderError as e:
                last_error = e
                logger.warning(f"Provider {provider.name} failed to describe curation {curation_id}: {e}")
        raise self._terminal_error(f"Failed to load curation {curation_id}", last_error)

    async def health_check(self) -> dict[str, ProviderHealth]:
        """Explicit health check of every provider and the cache store."""
        names = [p.name for p in self.providers] + ["cache"]
        checks = [p.health_check() for p in self.providers] + [self.cache.health_check()]
        results = await asyncio.gather(*checks)
        return dict(zip(names, results))

    def get_cache_stats(self) -> dict[str, Any]:
        stats = self.cache.stats().to_dict()
        stats["in_flight_builds"] = self._single_flight.in_flight
        stats["coalesced_requests"] = self._single_flight.coalesced
        return stats

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()
        await self.cache.close()

    # ==================== INTERNALS ====================

    def _require_subject(self, kind: SubjectKind, subject_id: str | None, check_format: bool = True) -> str:
        """
        Normalize a subject id, rejecting caller input errors up front.

        ``check_format`` asks the providers serving ``kind`` whether the id is
        well formed; cache maintenance only needs a key-safe id.
        """
        if subject_id is None or not subject_id.strip():
            raise MissingParameterError(SUBJECT_PARAMETERS[kind])
        subject_id = subject_id.strip()
        # ':' separates cache key segments
        if ":" in subject_id:
            raise InvalidSubjectError(SUBJECT_PARAMETERS[kind], subject_id)
        if check_format:
            serving = [p for p in self.providers if p.supports(kind)]
            if serving and not any(p.validate_address(subject_id) for p in serving):
                raise InvalidSubjectError(SUBJECT_PARAMETERS[kind], subject_id)
        return subject_id

    def _clamp(self, page: int | None, page_size: int | None) -> tuple[int, int]:
        page = page if page is not None and page >= 1 else 1
        if page_size is None or page_size < 1:
            page_size = self.settings.default_page_size
        return page, min(page_size, self.settings.max_page_size)

    def _candidates(self, kind: SubjectKind) -> list[DataProvider]:
        candidates = [p for p in self.providers if p.supports(kind)]
        if not candidates:
            raise OrchestrationError(f"No provider available for {kind.value} collections")
        if not self.settings.enable_fallback:
            return candidates[:1]
        return candidates

    def _terminal_error(self, message: str, last_error: ProviderError | None) -> OrchestrationError:
        if last_error is None:
            return OrchestrationError(message)
        return OrchestrationError(
            f"{message}: {last_error.message}",
            provider=last_error.provider,
            operation=last_error.operation,
        )

    async def _get_collection(
        self,
        kind: SubjectKind,
        subject_id: str | None,
        page: int | None,
        page_size: int | None,
        filters: TokenFilters | None,
        force_refresh: bool,
        sort: bool,
    ) -> CollectionResult:
        start = time.perf_counter()
        subject_id = self._require_subject(kind, subject_id)
        page, page_size = self._clamp(page, page_size)
        filters = filters or self.default_filters
        fp = fingerprint(kind, subject_id, filters, page, page_size)

        if not force_refresh:
            lookup_start = time.perf_counter()
            lookup = await self.cache.lookup(fp)
            cache_time_ms = _elapsed_ms(lookup_start)
            if lookup.hit and lookup.entry is not None:
                logger.info(f"Cache hit for {fp.entry_key} (page {page})")
                entry = lookup.entry
                tokens, pagination = paginate(entry.tokens, page, page_size)
                return CollectionResult(
                    tokens=tokens,
                    pagination=pagination,
                    cache=CacheInfo(
                        hit=True,
                        source=CacheSource.CACHE,
                        build_time_ms=entry.metadata.build_time_ms,
                        cache_key=fp.entry_key,
                    ),
                    performance=PerformanceInfo(
                        total_time_ms=_elapsed_ms(start),
                        cache_time_ms=cache_time_ms,
                    ),
                    data_sources=entry.metadata.providers,
                    fetched_at=datetime.now(timezone.utc),
                )
            if lookup.error:
                logger.warning(f"Cache unavailable for {fp.entry_key}, building from providers")

        build = await self._single_flight.do(
            fp.entry_key, lambda: self._build(kind, subject_id, filters, fp, sort)
        )
        entry = build.entry
        tokens, pagination = paginate(entry.tokens, page, page_size)
        return CollectionResult(
            tokens=tokens,
            pagination=pagination,
            cache=CacheInfo(
                hit=False,
                source=entry.metadata.source,
                build_time_ms=entry.metadata.build_time_ms,
                cache_key=fp.entry_key,
            ),
            performance=PerformanceInfo(
                total_time_ms=_elapsed_ms(start),
                fetch_time_ms=build.fetch_time_ms,
                filter_time_ms=build.filter_time_ms,
                cache_time_ms=build.cache_time_ms,
            ),
            filtering=build.filtering,
            data_sources=entry.metadata.providers,
            fetched_at=datetime.now(timezone.utc),
        )

    async def _fetch(self, kind: SubjectKind, subject_id: str) -> tuple[list[UnifiedToken], DataProvider, CacheSource]:
        """Fetch the full token set, trying providers by ascending priority."""
        last_error: ProviderError | None = None
        for index, provider in enumerate(self._candidates(kind)):
            try:
                if kind is SubjectKind.ADDRESS:
                    response = await provider.get_token_balances(subject_id)
                    tokens = response.tokens
                elif kind is SubjectKind.CONTRACT:
                    tokens = await provider.get_contract_tokens(subject_id)
                else:
                    tokens = await provider.get_curation_tokens(subject_id)
            except ProviderError as e:
                last_error = e
                logger.warning(
                    f"Provider {provider.name} failed for {kind.value} {subject_id}: {e}",
                    extra={"provider": e.provider, "operation": e.operation, "kind": e.kind.value},
                )
                continue

            source = CacheSource.API if index == 0 else CacheSource.HYBRID
            if source is CacheSource.HYBRID:
                logger.info(f"Served {kind.value} {subject_id} from fallback provider {provider.name}")
            return tokens, provider, source

        raise self._terminal_error(f"Failed to fetch {kind.value} collection for {subject_id}", last_error)

    async def _build(
        self,
        kind: SubjectKind,
        subject_id: str,
        filters: TokenFilters,
        fp: Fingerprint,
        sort: bool,
    ) -> _Build:
        build_start = time.perf_counter()
        tokens, provider, source = await self._fetch(kind, subject_id)
        fetch_time_ms = _elapsed_ms(build_start)

        if sort:
            # sort before filtering so projected tokens keep chronological order
            tokens = sort_chronologically(tokens)

        filter_start = time.perf_counter()
        result = apply_filters(tokens, filters)
        filter_time_ms = _elapsed_ms(filter_start)
        build_time_ms = _elapsed_ms(build_start)

        logger.info(
            f"Built {kind.value} collection {subject_id}: {result.summary()}",
            extra={"provider": provider.name, "build_time_ms": build_time_ms},
        )

        entry = CacheEntry(
            projected=filters.select_fields is not None,
            tokens=result.tokens,
            metadata=CacheEntryMetadata(
                built_at=datetime.now(timezone.utc),
                build_time_ms=build_time_ms,
                total_items=result.filtered_count,
                filter_config_hash=result.filter_hash,
                source=source,
                providers=[provider.name],
            ),
        )

        write_start = time.perf_counter()
        await self.cache.write(fp, entry)
        cache_time_ms = _elapsed_ms(write_start)

        return _Build(
            entry=entry,
            fetch_time_ms=fetch_time_ms,
            filter_time_ms=filter_time_ms,
            cache_time_ms=cache_time_ms,
            filtering=result.to_stats(),
        )


# Singleton instance
_orchestrator: DataOrchestrator | None = None


def get_orchestrator() -> DataOrchestrator:
    """Get singleton orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = DataOrchestrator(
            create_providers(settings),
            create_cache_store(settings),
            settings,
        )
    return _orchestrator


async def close_orchestrator() -> None:
    """Close orchestrator providers and cache."""
    global _orchestrator
    if _orchestrator:
        await _orchestrator.close()
        _orchestrator = None
