"""
Unit tests for the TzKT provider.

HTTP traffic is served by httpx.MockTransport handlers; no network access.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from collekt.core.exceptions import ProviderError, ProviderErrorKind, ProviderTimeoutError
from collekt.models.contracts.collections import PaginationOptions, SubjectKind
from collekt.models.contracts.filters import TokenFilters
from collekt.models.contracts.tokens import TokenStandard
from collekt.providers.base import ProviderConfig, RateLimitConfig, backoff_delay
from collekt.providers.tzkt import (
    BATCH_SIZE,
    MAX_PAGE_LIMIT,
    TzktProvider,
    normalize_metadata,
    normalize_standard,
)
from tests.conftest import CONTRACT, OTHER_CONTRACT, WALLET

BASE_URL = "https://api.tzkt.test"


def make_provider(handler, **config) -> TzktProvider:
    settings = {
        "name": "tzkt",
        "base_url": BASE_URL,
        "max_retries": 3,
        "retry_delay_ms": 0,
        "rate_limit": RateLimitConfig(requests_per_second=1000, burst_size=1000),
    }
    settings.update(config)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TzktProvider(ProviderConfig(**settings), client=client, batch_timeout_seconds=5)


def balance_item(token_id, contract=CONTRACT, balance="1", holder=WALLET, metadata=None, first="2024-01-01T00:00:00Z"):
    return {
        "id": int(token_id) + 1,
        "account": {"address": holder},
        "token": {
            "id": 1000 + int(token_id),
            "contract": {"address": contract, "alias": "Test Collection"},
            "tokenId": str(token_id),
            "standard": "fa2",
            "totalSupply": "10",
            "metadata": metadata if metadata is not None else {"name": f"Piece {token_id}", "decimals": "0"},
        },
        "balance": balance,
        "firstTime": first,
        "lastTime": "2024-02-01T00:00:00Z",
    }


class TestNormalization:
    def test_normalize_metadata(self):
        raw = {
            "name": "Sunrise",
            "decimals": "0",
            "displayUri": "ipfs://display",
            "artifactUri": "ipfs://artifact",
            "creators": "tz1creator",
            "tags": ["art", "photo"],
            "shouldPreferSymbol": "true",
            "attributes": [{"name": "palette", "value": "warm"}, {"value": "no name"}],
            "formats": [
                {"uri": "ipfs://artifact", "mimeType": "image/png", "fileSize": "2048",
                 "dimensions": {"value": "1024x768", "unit": "px"}},
                {"mimeType": "missing uri"},
            ],
        }

        metadata = normalize_metadata(raw, total_supply="5")

        assert metadata.name == "Sunrise"
        assert metadata.decimals == 0
        assert metadata.creators == ["tz1creator"]
        assert metadata.should_prefer_symbol is True
        assert metadata.supply == "5"
        assert [a.trait_type for a in metadata.attributes] == ["palette"]
        assert len(metadata.formats) == 1
        assert metadata.formats[0].file_size == 2048
        assert (metadata.formats[0].dimensions.width, metadata.formats[0].dimensions.height) == (1024, 768)
        assert metadata.raw == raw

    def test_missing_metadata(self):
        assert normalize_metadata(None) is None
        assert normalize_metadata("not a document") is None

    def test_unparseable_fields_are_dropped(self):
        metadata = normalize_metadata({"decimals": "many", "formats": "nope"})
        assert metadata.decimals is None
        assert metadata.formats == []

    @pytest.mark.parametrize(
        "value,expected",
        [("fa2", TokenStandard.FA2), ("FA1.2", TokenStandard.FA12), ("other", TokenStandard.UNKNOWN), (None, TokenStandard.UNKNOWN)],
    )
    def test_normalize_standard(self, value, expected):
        assert normalize_standard(value) == expected


class TestFilters:
    def test_transform_filters(self):
        provider = make_provider(lambda request: httpx.Response(200, json=[]))
        params = provider.transform_filters(
            TokenFilters(
                balance_gt=2,
                require_metadata=True,
                contract_blacklist=(OTHER_CONTRACT, CONTRACT),
                select_fields=("id",),
            )
        )

        assert params == {
            "balance.gt": "2",
            "token.metadata.null": "false",
            "token.contract.ni": ",".join(sorted([CONTRACT, OTHER_CONTRACT])),
            "select": "id",
        }

    def test_whitelist_takes_precedence(self):
        provider = make_provider(lambda request: httpx.Response(200, json=[]))
        params = provider.transform_filters(
            TokenFilters(contract_whitelist=(CONTRACT,), contract_blacklist=(OTHER_CONTRACT,))
        )

        assert params["token.contract.in"] == CONTRACT
        assert "token.contract.ni" not in params

    def test_validate_address(self):
        provider = make_provider(lambda request: httpx.Response(200, json=[]))
        assert provider.validate_address(WALLET) is True
        assert provider.validate_address(CONTRACT) is True
        assert provider.validate_address("tz1short") is False
        assert provider.validate_address("") is False

    def test_supported_kinds(self):
        provider = make_provider(lambda request: httpx.Response(200, json=[]))
        assert provider.supports(SubjectKind.ADDRESS)
        assert provider.supports(SubjectKind.CONTRACT)
        assert not provider.supports(SubjectKind.CURATION)


class TestTokenBalances:
    async def test_full_fetch_single_request(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=[balance_item(1), balance_item(2)])

        provider = make_provider(handler)

        response = await provider.get_token_balances(WALLET)

        assert len(requests) == 1
        params = requests[0].url.params
        assert params["account"] == WALLET
        assert params["limit"] == str(MAX_PAGE_LIMIT)
        assert params["sort.asc"] == "firstTime"
        assert response.total_count == 2
        token = response.tokens[0]
        assert token.id == f"{CONTRACT}_1"
        assert token.contract_alias == "Test Collection"
        assert token.standard == TokenStandard.FA2
        assert token.first_acquired_at.year == 2024
        assert token.source.provider == "tzkt"

    async def test_timeout_falls_back_to_batches(self):
        """A timed-out full fetch is retried as offset batches."""
        calls = []

        def handler(request):
            limit = int(request.url.params["limit"])
            calls.append((request.url.params.get("offset"), limit))
            if limit == MAX_PAGE_LIMIT:
                raise httpx.ReadTimeout("timed out", request=request)
            offset = int(request.url.params["offset"])
            if offset == 0:
                return httpx.Response(200, json=[balance_item(i) for i in range(BATCH_SIZE)])
            return httpx.Response(200, json=[balance_item(BATCH_SIZE + 1)])

        provider = make_provider(handler)

        response = await provider.get_token_balances(WALLET)

        assert calls == [(None, MAX_PAGE_LIMIT), ("0", BATCH_SIZE), (str(BATCH_SIZE), BATCH_SIZE)]
        assert response.total_count == BATCH_SIZE + 1

    async def test_full_first_page_continues_in_batches(self):
        """An account with more balances than one page holds is read to the end."""
        holdings = [balance_item(i) for i in range(MAX_PAGE_LIMIT + 500)]
        calls = []

        def handler(request):
            offset = int(request.url.params.get("offset", "0"))
            limit = int(request.url.params["limit"])
            calls.append((offset, limit))
            return httpx.Response(200, json=holdings[offset:offset + limit])

        provider = make_provider(handler)

        response = await provider.get_token_balances(WALLET)

        assert calls == [(0, MAX_PAGE_LIMIT), (MAX_PAGE_LIMIT, BATCH_SIZE)]
        assert response.total_count == MAX_PAGE_LIMIT + 500
        assert response.tokens[-1].token_id == str(MAX_PAGE_LIMIT + 499)
        assert response.has_more is False

    async def test_paginated_fetch(self):
        captured = {}

        def handler(request):
            captured.update(request.url.params)
            return httpx.Response(200, json=[balance_item(5)])

        provider = make_provider(handler)

        response = await provider.get_token_balances(
            WALLET, PaginationOptions.from_page(3, 10), TokenFilters(require_metadata=True)
        )

        assert captured["offset"] == "20"
        assert captured["limit"] == "10"
        assert captured["token.metadata.null"] == "false"
        assert response.has_more is False
        assert response.total_count == 21

    async def test_malformed_items_are_skipped(self):
        broken = {"id": 9, "token": {"contract": {}}, "balance": "1"}
        provider = make_provider(lambda request: httpx.Response(200, json=[broken, balance_item(1)]))

        response = await provider.get_token_balances(WALLET)

        assert [t.token_id for t in response.tokens] == ["1"]

    async def test_count(self):
        provider = make_provider(lambda request: httpx.Response(200, json=42))
        assert await provider.get_token_balances_count(WALLET) == 42


class TestContractTokens:
    async def test_aggregates_holders_and_skips_burns(self):
        items = [
            balance_item(1, holder=WALLET, first="2024-03-01T00:00:00Z"),
            balance_item(1, holder="tz1aSkwEot3L2kmUvcoxzjMomb9mvBNuzFK6", first="2024-01-15T00:00:00Z"),
            balance_item(2, holder="tz1burnburnburnburnburnburnburjAYjjX"),
            balance_item(3, balance="0"),
        ]
        captured = {}

        def handler(request):
            captured.update(request.url.params)
            return httpx.Response(200, json=items)

        provider = make_provider(handler)

        tokens = await provider.get_contract_tokens(CONTRACT)

        assert captured["token.contract"] == CONTRACT
        assert [t.token_id for t in tokens] == ["1"]
        assert tokens[0].balance == "1"
        assert tokens[0].first_acquired_at.month == 1


class TestGetTokens:
    async def test_chunks_and_dedupes_ids(self):
        seen = []

        def handler(request):
            ids = request.url.params["tokenId.in"].split(",")
            seen.append(len(ids))
            return httpx.Response(200, json=[balance_item(i)["token"] for i in ids])

        provider = make_provider(handler)

        tokens = await provider.get_tokens(CONTRACT, [str(i) for i in range(150)] + ["0"])

        assert seen == [100, 50]
        assert len(tokens) == 150
        assert all(t.balance == "1" for t in tokens)


class TestDomains:
    async def test_domain_by_name(self):
        def handler(request):
            assert request.url.path == "/v1/domains/alice.tez"
            return httpx.Response(
                200,
                json={"name": "alice.tez", "owner": {"address": WALLET}, "address": {"address": WALLET}, "reverse": True},
            )

        provider = make_provider(handler)

        domains = await provider.get_domains_by_name("alice.tez")

        assert domains[0].resolved_address == WALLET
        assert domains[0].is_reverse is True

    async def test_domain_by_name_not_found(self):
        provider = make_provider(lambda request: httpx.Response(204))
        assert await provider.get_domains_by_name("nobody.tez") == []

    async def test_domains_by_address(self):
        captured = {}

        def handler(request):
            captured.update(request.url.params)
            return httpx.Response(200, json=[{"name": "alice.tez", "address": {"address": WALLET}}])

        provider = make_provider(handler)

        domains = await provider.get_domains_by_address(WALLET)

        assert captured["reverse"] == "true"
        assert captured["limit"] == "1"
        assert domains[0].name == "alice.tez"


class TestRequestPolicy:
    """Retries, error mapping and health checks."""

    async def test_retries_transient_server_error(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json=7)])
        provider = make_provider(lambda request: next(responses))

        assert await provider.get_token_balances_count(WALLET) == 7

    async def test_retries_rate_limit(self):
        responses = iter([httpx.Response(429, headers={"Retry-After": "0"}), httpx.Response(200, json=3)])
        provider = make_provider(lambda request: next(responses))

        assert await provider.get_token_balances_count(WALLET) == 3

    async def test_long_retry_after_is_not_waited_out(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "86400"})

        provider = make_provider(handler, timeout_seconds=30)

        with patch("collekt.providers.base.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(ProviderError) as exc_info:
                await provider.get_token_balances_count(WALLET)

        assert len(calls) == 1
        sleep.assert_not_awaited()
        assert exc_info.value.kind is ProviderErrorKind.RATE_LIMIT
        assert exc_info.value.retry_after_seconds == 86400

    async def test_short_retry_after_is_honoured(self):
        responses = iter([httpx.Response(429, headers={"Retry-After": "2"}), httpx.Response(200, json=4)])
        provider = make_provider(lambda request: next(responses), timeout_seconds=30)

        with patch("collekt.providers.base.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await provider.get_token_balances_count(WALLET) == 4

        sleep.assert_awaited_once_with(2.0)

    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        provider = make_provider(handler)

        with pytest.raises(ProviderError) as exc_info:
            await provider.get_token_balances_count(WALLET)

        assert len(calls) == 1
        assert exc_info.value.status_code == 404
        assert exc_info.value.is_transient is False
        assert exc_info.value.provider == "tzkt"
        assert exc_info.value.operation == "get_token_balances_count"

    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        provider = make_provider(handler, max_retries=2)

        with pytest.raises(ProviderError, match="connection error"):
            await provider.get_token_balances_count(WALLET)
        assert len(calls) == 2

    async def test_timeout_error_kind(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = make_provider(handler, max_retries=1, timeout_seconds=2)

        with pytest.raises(ProviderTimeoutError) as exc_info:
            await provider.get_token_balances_count(WALLET)
        assert exc_info.value.kind is ProviderErrorKind.TIMEOUT
        assert exc_info.value.timeout_seconds == 2

    async def test_health_check(self):
        provider = make_provider(lambda request: httpx.Response(200, json={"level": 1}))
        assert (await provider.health_check()).is_healthy is True

    async def test_health_check_failure(self):
        provider = make_provider(lambda request: httpx.Response(500))
        health = await provider.health_check()
        assert health.is_healthy is False
        assert "HTTP 500" in health.error_message

    @pytest.mark.parametrize(
        "backoff,attempt,expected",
        [("linear", 1, 1.0), ("linear", 3, 3.0), ("exponential", 1, 1.0), ("exponential", 3, 4.0)],
    )
    def test_backoff_delay(self, backoff, attempt, expected):
        config = ProviderConfig(name="tzkt", base_url=BASE_URL, retry_delay_ms=1000, backoff=backoff)
        assert backoff_delay(config, attempt) == expected
