"""
Pytest fixtures for collekt testing.

This module provides:
1. Test environment configuration (in-memory cache, no network)
2. Token factories
3. A scriptable fake provider
4. Cache store and orchestrator fixtures
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from collekt.config import Settings, get_settings
from collekt.core.cache import MemoryCacheStore
from collekt.core.exceptions import ProviderError
from collekt.models.contracts.collections import PaginationOptions, SubjectKind
from collekt.models.contracts.filters import DomainOptions, TokenFilters
from collekt.models.contracts.health import ProviderHealth
from collekt.models.contracts.tokens import (
    DataSource,
    UnifiedDomain,
    UnifiedMetadata,
    UnifiedToken,
    UnifiedTokenResponse,
)
from collekt.providers.base import DataProvider, ProviderConfig, RateLimitConfig

# Valid base58 addresses used across tests
WALLET = "tz1VSUr8wwNhLAzempoch5d6hLRiTh8Cjcjb"
OTHER_WALLET = "tz1aSkwEot3L2kmUvcoxzjMomb9mvBNuzFK6"
CONTRACT = "KT1RJ6PbjHpwc3M5rw5s2Nbmefwbuwbdxton"
OTHER_CONTRACT = "KT1LjmAdYQCLBjwv4S2oFkEzyHVkomAf5MrW"
CURATION_SLUG = "b264a749"

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ==================== CONFIGURATION ====================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables once per session."""
    os.environ["COLLEKT_ENVIRONMENT"] = "testing"
    os.environ["COLLEKT_CACHE_BACKEND"] = "memory"
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast, deterministic tests."""
    return Settings(
        environment="testing",
        cache_backend="memory",
        provider_max_retries=2,
        provider_retry_delay_ms=0,
        default_page_size=20,
        max_page_size=500,
        filter_profile="production",
    )


# ==================== TOKEN FACTORIES ====================


def make_metadata(**overrides: Any) -> UnifiedMetadata:
    data: dict[str, Any] = {
        "name": "Artwork",
        "decimals": 0,
        "display_uri": "ipfs://QmDisplay",
        "artifact_uri": "ipfs://QmArtifact",
    }
    data.update(overrides)
    return UnifiedMetadata(**data)


def make_token(
    token_id: int | str = 1,
    contract: str = CONTRACT,
    balance: str = "1",
    metadata: UnifiedMetadata | None | str = "default",
    first_acquired_at: datetime | None = None,
    last_transfer_at: datetime | None = None,
    total_supply: str | None = "1",
    provider: str = "tzkt",
) -> UnifiedToken:
    token_id = str(token_id)
    return UnifiedToken(
        id=UnifiedToken.make_id(contract, token_id),
        contract_address=contract,
        token_id=token_id,
        balance=balance,
        metadata=make_metadata() if metadata == "default" else metadata,
        source=DataSource(provider=provider, endpoint="https://api.tzkt.io"),
        fetched_at=BASE_TIME,
        first_acquired_at=first_acquired_at,
        last_transfer_at=last_transfer_at,
        total_supply=total_supply,
    )


def make_tokens(count: int, contract: str = CONTRACT, start: int = 0) -> list[UnifiedToken]:
    """``count`` valid NFTs acquired one day apart, in acquisition order."""
    return [
        make_token(
            token_id=start + i,
            contract=contract,
            first_acquired_at=BASE_TIME + timedelta(days=start + i),
        )
        for i in range(count)
    ]


# ==================== FAKE PROVIDER ====================


class FakeProvider(DataProvider):
    """
    Scriptable in-memory provider.

    ``tokens`` is returned for every subject kind and ids in ``invalid``
    fail validation. Set ``error`` to make every fetch fail; ``delay``
    suspends each fetch to exercise coalescing.
    """

    def __init__(
        self,
        name: str = "tzkt",
        priority: int = 1,
        tokens: list[UnifiedToken] | None = None,
        kinds: frozenset[SubjectKind] | None = None,
        error: ProviderError | None = None,
        delay: float = 0.0,
    ):
        super().__init__(
            ProviderConfig(
                name=name,
                priority=priority,
                base_url="http://fake.invalid",
                rate_limit=RateLimitConfig(requests_per_second=1000, burst_size=1000),
            )
        )
        self.tokens = tokens or []
        self.supported_kinds = kinds or frozenset(SubjectKind)
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.domains: dict[str, str] = {}
        self.invalid: set[str] = set()

    async def _fetch(self, operation: str, subject: str) -> list[UnifiedToken]:
        self.calls.append((operation, subject))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.tokens)

    async def get_token_balances(
        self,
        address: str,
        pagination: PaginationOptions | None = None,
        filters: TokenFilters | None = None,
    ) -> UnifiedTokenResponse:
        tokens = await self._fetch("get_token_balances", address)
        return UnifiedTokenResponse(
            tokens=tokens,
            total_count=len(tokens),
            source=DataSource(provider="custom", endpoint=self.config.base_url),
        )

    async def get_contract_tokens(self, contract_address: str) -> list[UnifiedToken]:
        return await self._fetch("get_contract_tokens", contract_address)

    async def get_curation_tokens(self, curation_id: str) -> list[UnifiedToken]:
        return await self._fetch("get_curation_tokens", curation_id)

    async def get_token_balances_count(self, address: str, filters: TokenFilters | None = None) -> int:
        tokens = await self._fetch("get_token_balances_count", address)
        return len(tokens)

    async def get_domains_by_address(self, address: str, options: DomainOptions | None = None) -> list[UnifiedDomain]:
        return []

    async def get_domains_by_name(self, name: str, options: DomainOptions | None = None) -> list[UnifiedDomain]:
        self.calls.append(("get_domains_by_name", name))
        if self.error is not None:
            raise self.error
        address = self.domains.get(name)
        if address is None:
            return []
        return [
            UnifiedDomain(
                name=name,
                resolved_address=address,
                source=DataSource(provider="custom", endpoint=self.config.base_url),
                fetched_at=BASE_TIME,
            )
        ]

    def validate_address(self, address: str) -> bool:
        return bool(address) and address not in self.invalid

    def transform_filters(self, filters: TokenFilters) -> dict[str, Any]:
        return {}

    async def health_check(self) -> ProviderHealth:
        return ProviderHealth(is_healthy=self.error is None, last_check=BASE_TIME)


@pytest.fixture
def memory_store() -> MemoryCacheStore:
    return MemoryCacheStore(default_ttl=3600)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(tokens=make_tokens(5))


@pytest.fixture
def orchestrator(fake_provider, memory_store, settings):
    from collekt.services.orchestrator import DataOrchestrator

    return DataOrchestrator([fake_provider], memory_store, settings)
