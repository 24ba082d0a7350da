"""
TzKT Provider

Direct indexer provider backed by the TzKT REST API (https://api.tzkt.io).

Endpoints used:
- GET /v1/tokens/balances        - account holdings and contract views
- GET /v1/tokens/balances/count  - holding counts
- GET /v1/tokens                 - specific tokens of a contract
- GET /v1/domains, /v1/domains/{name} - Tezos Domains records
- GET /v1/head                   - health check
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

import httpx

from collekt.core.exceptions import ProviderError, ProviderTimeoutError
from collekt.models.contracts.collections import PaginationOptions, SubjectKind
from collekt.models.contracts.filters import DomainOptions, TokenFilters
from collekt.models.contracts.health import ProviderHealth
from collekt.models.contracts.tokens import (
    DataSource,
    TokenAttribute,
    TokenDimensions,
    TokenFormat,
    TokenStandard,
    UnifiedDomain,
    UnifiedMetadata,
    UnifiedToken,
    UnifiedTokenResponse,
)
from collekt.providers.base import DataProvider, ProviderConfig

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^(tz1|tz2|tz3|KT1)[1-9A-HJ-NP-Za-km-z]{33}$")

# TzKT caps a single page at 10 000 items
MAX_PAGE_LIMIT = 10000
BATCH_SIZE = 1000
TOKEN_ID_CHUNK = 100

BURN_ADDRESSES = frozenset({
    "tz1burnburnburnburnburnburnburjAYjjX",
    "tz1Ke2h7sDdakHJQh8WX4Z372du1KChsksyU",
})


# ==================== NORMALIZATION ====================


def _parse_datetime(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, (str, int))]
    return []


def _parse_dimensions(value: Any) -> TokenDimensions | None:
    # TZIP-21 dimensions look like {"value": "1024x768", "unit": "px"}
    if not isinstance(value, dict):
        return None
    raw = str(value.get("value", ""))
    match = re.match(r"^\s*(\d+)\s*x\s*(\d+)\s*$", raw)
    if not match:
        return None
    return TokenDimensions(width=int(match.group(1)), height=int(match.group(2)))


def _parse_formats(value: Any) -> list[TokenFormat]:
    formats = []
    if not isinstance(value, list):
        return formats
    for item in value:
        if not isinstance(item, dict) or not item.get("uri"):
            continue
        formats.append(
            TokenFormat(
                uri=str(item["uri"]),
                mime_type=item.get("mimeType"),
                file_size=_parse_int(item.get("fileSize")),
                hash=item.get("hash"),
                dimensions=_parse_dimensions(item.get("dimensions")),
            )
        )
    return formats


def _parse_attributes(value: Any) -> list[TokenAttribute]:
    attributes = []
    if not isinstance(value, list):
        return attributes
    for item in value:
        if not isinstance(item, dict):
            continue
        trait = item.get("name") or item.get("trait_type")
        if trait:
            attributes.append(TokenAttribute(trait_type=str(trait), value=item.get("value")))
    return attributes


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def normalize_metadata(raw: Any, total_supply: str | None = None) -> UnifiedMetadata | None:
    """Map a TZIP-21 metadata document onto UnifiedMetadata."""
    if not isinstance(raw, dict):
        return None
    return UnifiedMetadata(
        name=_opt_str(raw.get("name")),
        description=_opt_str(raw.get("description")),
        symbol=_opt_str(raw.get("symbol")),
        decimals=_parse_int(raw.get("decimals")),
        image=_opt_str(raw.get("image")),
        artifact_uri=_opt_str(raw.get("artifactUri")),
        display_uri=_opt_str(raw.get("displayUri")),
        thumbnail_uri=_opt_str(raw.get("thumbnailUri")),
        formats=_parse_formats(raw.get("formats")),
        creators=_string_list(raw.get("creators")),
        tags=_string_list(raw.get("tags")),
        attributes=_parse_attributes(raw.get("attributes")),
        supply=_opt_str(total_supply) or _opt_str(raw.get("supply")),
        should_prefer_symbol=_parse_bool(raw.get("shouldPreferSymbol", False)),
        raw=raw,
    )


def normalize_standard(value: Any) -> TokenStandard:
    if not isinstance(value, str):
        return TokenStandard.UNKNOWN
    value = value.lower()
    if value == "fa2":
        return TokenStandard.FA2
    if value in ("fa1.2", "fa12"):
        return TokenStandard.FA12
    return TokenStandard.UNKNOWN


class TzktProvider(DataProvider):
    """Provider for the TzKT indexer."""

    supported_kinds = frozenset({SubjectKind.ADDRESS, SubjectKind.CONTRACT})

    def __init__(
        self,
        config: ProviderConfig,
        client: httpx.AsyncClient | None = None,
        batch_timeout_seconds: float = 30.0,
    ):
        super().__init__(config, client)
        self.batch_timeout_seconds = batch_timeout_seconds

    @property
    def source(self) -> DataSource:
        return DataSource(
            provider="tzkt",
            version="v1",
            endpoint=self.config.base_url,
            priority=self.priority,
        )

    # ==================== NORMALIZATION ====================

    def _token_from_tzkt(
        self,
        token: dict[str, Any],
        balance: str,
        fetched_at: datetime,
        first_time: Any = None,
        last_time: Any = None,
    ) -> UnifiedToken:
        contract = token.get("contract") or {}
        contract_address = contract.get("address")
        token_id = token.get("tokenId")
        if not contract_address or token_id is None:
            raise ValueError("token is missing contract address or token id")
        token_id = str(token_id)
        total_supply = _opt_str(token.get("totalSupply"))

        return UnifiedToken(
            id=UnifiedToken.make_id(contract_address, token_id),
            contract_address=contract_address,
            contract_alias=contract.get("alias"),
            token_id=token_id,
            balance=balance,
            standard=normalize_standard(token.get("standard")),
            metadata=normalize_metadata(token.get("metadata"), total_supply),
            source=self.source,
            fetched_at=fetched_at,
            first_acquired_at=_parse_datetime(first_time),
            last_transfer_at=_parse_datetime(last_time),
            total_supply=total_supply,
        )

    def _normalize_balances(self, items: list[dict[str, Any]]) -> list[UnifiedToken]:
        fetched_at = datetime.now(timezone.utc)
        tokens = []
        for item in items:
            try:
                tokens.append(
                    self._token_from_tzkt(
                        item.get("token") or {},
                        balance=str(item.get("balance", "0")),
                        fetched_at=fetched_at,
                        first_time=item.get("firstTime"),
                        last_time=item.get("lastTime"),
                    )
                )
            except ValueError as e:
                logger.warning(f"Skipping malformed TzKT balance {item.get('id')}: {e}")
        return tokens

    def _normalize_domain(self, item: dict[str, Any], fetched_at: datetime) -> UnifiedDomain:
        owner = item.get("owner") or {}
        address = item.get("address") or {}
        return UnifiedDomain(
            name=item.get("name", ""),
            owner_address=owner.get("address"),
            resolved_address=address.get("address"),
            is_reverse=bool(item.get("reverse", False)),
            expires_at=_parse_datetime(item.get("expiration")),
            source=self.source,
            fetched_at=fetched_at,
        )

    # ==================== FILTERS ====================

    def transform_filters(self, filters: TokenFilters) -> dict[str, Any]:
        params: dict[str, Any] = {"balance.gt": str(filters.balance_gt or 0)}
        if filters.require_metadata:
            params["token.metadata.null"] = "false"
        if filters.contract_whitelist:
            params["token.contract.in"] = ",".join(sorted(filters.contract_whitelist))
        elif filters.contract_blacklist:
            params["token.contract.ni"] = ",".join(sorted(filters.contract_blacklist))
        if filters.select_fields:
            params["select"] = ",".join(filters.select_fields)
        return params

    def _query_filters(self, filters: TokenFilters | None) -> dict[str, Any]:
        # select changes the response shape, normalization needs full records
        params = self.transform_filters(filters or TokenFilters())
        params.pop("select", None)
        return params

    def validate_address(self, address: str) -> bool:
        return bool(address) and bool(ADDRESS_PATTERN.match(address))

    # ==================== TOKENS ====================

    async def get_token_balances_count(
        self, address: str, filters: TokenFilters | None = None
    ) -> int:
        params = {"account": address, **self._query_filters(filters)}
        result = await self._request(
            "GET", "/v1/tokens/balances/count", "get_token_balances_count", params=params
        )
        return _parse_int(result) or 0

    async def get_token_balances(
        self,
        address: str,
        pagination: PaginationOptions | None = None,
        filters: TokenFilters | None = None,
    ) -> UnifiedTokenResponse:
        params = {"account": address, **self._query_filters(filters)}

        if pagination is not None:
            params.update(offset=pagination.offset, limit=pagination.limit)
            if pagination.sort:
                params[f"sort.{pagination.sort.direction}"] = pagination.sort.field
            else:
                params["sort.asc"] = "firstTime"
            items = await self._request(
                "GET", "/v1/tokens/balances", "get_token_balances", params=params
            ) or []
            tokens = self._normalize_balances(items)
            return UnifiedTokenResponse(
                tokens=tokens,
                total_count=pagination.offset + len(items),
                has_more=len(items) >= pagination.limit,
                source=self.source,
            )

        params["sort.asc"] = "firstTime"
        items = await self._fetch_all_balances(address, params)
        tokens = self._normalize_balances(items)
        logger.info(f"Fetched {len(tokens)} token balances for {address}")
        return UnifiedTokenResponse(
            tokens=tokens,
            total_count=len(tokens),
            has_more=False,
            source=self.source,
        )

    async def _fetch_all_balances(self, address: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """
        Fetch every balance, starting with one large request.

        A full first page means more balances remain, which are then read in
        offset batches. If the large request times out, every balance is read
        in batches with a shorter per-batch timeout.
        """
        items: list[dict[str, Any]] = []
        offset = 0
        try:
            items = await self._request(
                "GET",
                "/v1/tokens/balances",
                "get_token_balances",
                params={**params, "limit": MAX_PAGE_LIMIT},
                attempts=1,
            ) or []
            if len(items) < MAX_PAGE_LIMIT:
                return items
            offset = len(items)
            logger.info(f"{address} holds more than {MAX_PAGE_LIMIT} balances, continuing in batches")
        except ProviderTimeoutError:
            logger.warning(
                f"Full balance fetch for {address} timed out, falling back to batches of {BATCH_SIZE}"
            )

        while True:
            batch = await self._request(
                "GET",
                "/v1/tokens/balances",
                "get_token_balances_batch",
                params={**params, "offset": offset, "limit": BATCH_SIZE},
                timeout=self.batch_timeout_seconds,
            ) or []
            items.extend(batch)
            logger.debug(f"Fetched batch of {len(batch)} balances at offset {offset} for {address}")
            if len(batch) < BATCH_SIZE:
                return items
            offset += BATCH_SIZE

    async def get_contract_tokens(self, contract_address: str) -> list[UnifiedToken]:
        """
        Contract-scoped view: every live token of a contract, once.

        Holder balances are aggregated per token, balances held by known burn
        addresses are skipped, and each live token is emitted with balance "1".
        """
        aggregated: dict[str, dict[str, Any]] = {}
        offset = 0
        while True:
            batch = await self._request(
                "GET",
                "/v1/tokens/balances",
                "get_contract_tokens",
                params={
                    "token.contract": contract_address,
                    "balance.gt": "0",
                    "sort.asc": "id",
                    "offset": offset,
                    "limit": MAX_PAGE_LIMIT,
                },
            ) or []

            for item in batch:
                token = item.get("token") or {}
                token_id = token.get("tokenId")
                holder = (item.get("account") or {}).get("address")
                amount = _parse_int(item.get("balance")) or 0
                if token_id is None or not holder or amount <= 0:
                    continue
                if holder in BURN_ADDRESSES:
                    continue

                entry = aggregated.setdefault(
                    str(token_id),
                    {"token": token, "total": 0, "first": None, "last": None},
                )
                entry["total"] += amount
                first = _parse_datetime(item.get("firstTime"))
                last = _parse_datetime(item.get("lastTime"))
                if first and (entry["first"] is None or first < entry["first"]):
                    entry["first"] = first
                if last and (entry["last"] is None or last > entry["last"]):
                    entry["last"] = last

            if len(batch) < MAX_PAGE_LIMIT:
                break
            offset += MAX_PAGE_LIMIT

        fetched_at = datetime.now(timezone.utc)
        tokens = []
        for token_id, entry in aggregated.items():
            try:
                tokens.append(
                    self._token_from_tzkt(
                        entry["token"],
                        balance="1",
                        fetched_at=fetched_at,
                        first_time=entry["first"].isoformat() if entry["first"] else None,
                        last_time=entry["last"].isoformat() if entry["last"] else None,
                    )
                )
            except ValueError as e:
                logger.warning(f"Skipping malformed token {contract_address}:{token_id}: {e}")

        logger.info(f"Found {len(tokens)} live tokens in contract {contract_address}")
        return tokens

    async def get_tokens(self, contract_address: str, token_ids: list[str]) -> list[UnifiedToken]:
        """
        Fetch specific tokens of one contract, each with balance "1".

        Tokens the indexer does not know are silently absent from the result.
        """
        fetched_at = datetime.now(timezone.utc)
        tokens: list[UnifiedToken] = []
        unique_ids = list(dict.fromkeys(str(t) for t in token_ids))

        for start in range(0, len(unique_ids), TOKEN_ID_CHUNK):
            chunk = unique_ids[start:start + TOKEN_ID_CHUNK]
            items = await self._request(
                "GET",
                "/v1/tokens",
                "get_tokens",
                params={
                    "contract": contract_address,
                    "tokenId.in": ",".join(chunk),
                    "limit": len(chunk),
                },
            ) or []
            for item in items:
                try:
                    tokens.append(
                        self._token_from_tzkt(
                            item,
                            balance="1",
                            fetched_at=fetched_at,
                            first_time=item.get("firstTime"),
                            last_time=item.get("lastTime"),
                        )
                    )
                except ValueError as e:
                    logger.warning(f"Skipping malformed token in {contract_address}: {e}")

        if len(tokens) < len(unique_ids):
            logger.info(
                f"{len(unique_ids) - len(tokens)} of {len(unique_ids)} requested tokens "
                f"not found in {contract_address}"
            )
        return tokens

    # ==================== DOMAINS ====================

    async def get_domains_by_address(
        self, address: str, options: DomainOptions | None = None
    ) -> list[UnifiedDomain]:
        options = options or DomainOptions(reverse=True, limit=1)
        params: dict[str, Any] = {"address": address, "limit": options.limit}
        if options.reverse is not None:
            params["reverse"] = str(options.reverse).lower()
        items = await self._request(
            "GET", "/v1/domains", "get_domains_by_address", params=params
        ) or []
        fetched_at = datetime.now(timezone.utc)
        return [self._normalize_domain(item, fetched_at) for item in items]

    async def get_domains_by_name(
        self, name: str, options: DomainOptions | None = None
    ) -> list[UnifiedDomain]:
        item = await self._request("GET", f"/v1/domains/{name}", "get_domains_by_name")
        if not item:
            return []
        return [self._normalize_domain(item, datetime.now(timezone.utc))]

    # ==================== HEALTH ====================

    async def health_check(self) -> ProviderHealth:
        start = time.perf_counter()
        try:
            await self._request("GET", "/v1/head", "health_check", attempts=1)
        except ProviderError as e:
            return ProviderHealth(
                is_healthy=False,
                last_check=datetime.now(timezone.utc),
                response_time_ms=(time.perf_counter() - start) * 1000,
                error_message=str(e),
            )
        return ProviderHealth(
            is_healthy=True,
            last_check=datetime.now(timezone.utc),
            response_time_ms=(time.perf_counter() - start) * 1000,
        )
