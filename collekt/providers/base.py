"""
Data Provider Base

Common contract for every upstream token source. Providers normalize their
native responses into the unified models; callers never see a
provider-native shape.

Each outbound call:
1. Waits on the provider's token-bucket rate limiter
2. Is bounded by the configured timeout
3. Is retried on transient failures (timeouts, 429, 5xx, connection errors)
   with linear or exponential backoff
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from collekt.config import Settings
from collekt.core.exceptions import (
    ProviderError,
    ProviderErrorKind,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from collekt.core.rate_limit import TokenBucket
from collekt.models.contracts.collections import PaginationOptions, SubjectKind
from collekt.models.contracts.filters import DomainOptions, TokenFilters
from collekt.models.contracts.health import ProviderHealth
from collekt.models.contracts.tokens import UnifiedDomain, UnifiedToken, UnifiedTokenResponse

logger = logging.getLogger(__name__)

USER_AGENT = "collekt/1.0"


# ==================== CONFIGURATION ====================


class RateLimitConfig(BaseModel):
    requests_per_second: float = Field(default=10.0, gt=0)
    burst_size: int = Field(default=10, ge=1)


class ProviderConfig(BaseModel):
    """Identity and transport policy of one provider instance"""
    name: str
    priority: int = Field(default=1, description="Lower is tried first")
    base_url: str
    api_key: str | None = None
    timeout_seconds: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=3, ge=1, description="Total attempts including the first")
    retry_delay_ms: int = Field(default=1000, ge=0)
    backoff: Literal["linear", "exponential"] = "linear"
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        name: str,
        priority: int,
        base_url: str,
        api_key: str | None = None,
    ) -> "ProviderConfig":
        return cls(
            name=name,
            priority=priority,
            base_url=base_url,
            api_key=api_key,
            timeout_seconds=settings.provider_timeout_seconds,
            max_retries=settings.provider_max_retries,
            retry_delay_ms=settings.provider_retry_delay_ms,
            backoff=settings.provider_backoff,
            rate_limit=RateLimitConfig(
                requests_per_second=settings.provider_requests_per_second,
                burst_size=settings.provider_burst_size,
            ),
        )


def backoff_delay(config: ProviderConfig, attempt: int) -> float:
    """
    Seconds to wait after failed attempt number ``attempt`` (1-based).

    linear: delay * attempt; exponential: delay * 2 ** (attempt - 1).
    """
    base = config.retry_delay_ms / 1000
    if config.backoff == "exponential":
        return base * 2 ** (attempt - 1)
    return base * attempt


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


# ==================== BASE PROVIDER ====================


class DataProvider(ABC):
    """
    Abstract upstream token source.

    Subclasses declare which subject kinds they can serve in
    ``supported_kinds`` and implement the matching fetch operation.
    """

    supported_kinds: frozenset[SubjectKind] = frozenset({SubjectKind.ADDRESS})

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._rate_limiter = TokenBucket(
            config.rate_limit.requests_per_second,
            config.rate_limit.burst_size,
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def priority(self) -> int:
        return self.config.priority

    def supports(self, kind: SubjectKind) -> bool:
        return kind in self.supported_kinds

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if self.config.api_key:
            headers["apikey"] = self.config.api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _error(
        self,
        operation: str,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.GENERIC,
        status_code: int | None = None,
    ) -> ProviderError:
        return ProviderError(
            f"{self.name} {operation} failed: {message}",
            self.name,
            operation,
            kind=kind,
            status_code=status_code,
        )

    async def _send_once(
        self,
        method: str,
        url: str,
        operation: str,
        timeout: float,
        params: dict[str, Any] | None,
        json: Any,
    ) -> Any:
        await self._rate_limiter.acquire()
        client = await self._get_client()
        try:
            response = await client.request(method, url, params=params, json=json, timeout=timeout)
        except httpx.TimeoutException:
            raise ProviderTimeoutError(self.name, operation, timeout) from None
        except httpx.TransportError as e:
            raise self._error(operation, f"connection error: {e}") from e

        if response.status_code == 429:
            raise ProviderRateLimitError(self.name, operation, _retry_after(response))
        if response.is_error:
            raise self._error(
                operation,
                f"HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise self._error(operation, f"invalid JSON response: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        timeout: float | None = None,
        attempts: int | None = None,
    ) -> Any:
        """
        Send a request with rate limiting, timeout and retries.

        Args:
            method: HTTP method
            path: Path appended to ``base_url``, or an absolute URL
            operation: Operation name for logs and errors
            params: Query parameters
            json: JSON body
            timeout: Per-attempt timeout (defaults to the configured one)
            attempts: Total attempts (defaults to ``max_retries``)

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            ProviderError: On a non-transient failure or once attempts run out
        """
        url = path if path.startswith(("http://", "https://")) else f"{self.config.base_url.rstrip('/')}{path}"
        timeout = timeout or self.config.timeout_seconds
        attempts = attempts or self.config.max_retries

        for attempt in range(1, attempts + 1):
            try:
                return await self._send_once(method, url, operation, timeout, params, json)
            except ProviderError as e:
                if not e.is_transient or attempt >= attempts:
                    raise
                delay = backoff_delay(self.config, attempt)
                if e.kind is ProviderErrorKind.RATE_LIMIT and e.retry_after_seconds is not None:
                    # a wait longer than one attempt may take is a hard stop
                    if e.retry_after_seconds > timeout:
                        logger.warning(
                            f"{self.name} {operation} rate limited for {e.retry_after_seconds:g}s, "
                            f"longer than the {timeout:g}s timeout; not retrying",
                            extra={"provider": self.name, "operation": operation, "kind": e.kind.value},
                        )
                        raise
                    delay = e.retry_after_seconds
                logger.warning(
                    f"{self.name} {operation} failed (attempt {attempt}/{attempts}), retrying in {delay:.2f}s: {e}",
                    extra={"provider": self.name, "operation": operation, "kind": e.kind.value},
                )
                await asyncio.sleep(delay)

    # ==================== CAPABILITIES ====================

    @abstractmethod
    async def health_check(self) -> ProviderHealth:
        ...

    @abstractmethod
    async def get_domains_by_address(
        self, address: str, options: DomainOptions | None = None
    ) -> list[UnifiedDomain]:
        ...

    @abstractmethod
    async def get_domains_by_name(
        self, name: str, options: DomainOptions | None = None
    ) -> list[UnifiedDomain]:
        ...

    @abstractmethod
    async def get_token_balances_count(
        self, address: str, filters: TokenFilters | None = None
    ) -> int:
        ...

    @abstractmethod
    async def get_token_balances(
        self,
        address: str,
        pagination: PaginationOptions | None = None,
        filters: TokenFilters | None = None,
    ) -> UnifiedTokenResponse:
        """
        Fetch an account's token holdings.

        Without ``pagination`` the complete holding set is returned.
        """

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        ...

    @abstractmethod
    def transform_filters(self, filters: TokenFilters) -> dict[str, Any]:
        """Map a filter configuration onto the provider's native query format."""

    async def get_contract_tokens(self, contract_address: str) -> list[UnifiedToken]:
        raise NotImplementedError(f"{self.name} does not serve contract collections")

    async def get_curation_tokens(self, curation_id: str) -> list[UnifiedToken]:
        raise NotImplementedError(f"{self.name} does not serve curations")
