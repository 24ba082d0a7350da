"""
objkt.com Curation Provider

Bridge provider for curations (objkt.com galleries):
1. Resolve the curation id to (fa_contract, token_id) references via GraphQL
2. Group references per contract
3. Fetch the tokens themselves from the indexer, so curation tokens share the
   exact shape of every other collection

Curation ids come in three forms: numeric gallery ids, 8-character hex
slugs and full gallery UUIDs.
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Any

import httpx

from collekt.core.exceptions import ProviderError
from collekt.models.contracts.collections import PaginationOptions, SubjectKind
from collekt.models.contracts.curation import CurationInfo
from collekt.models.contracts.filters import DomainOptions, TokenFilters
from collekt.models.contracts.health import ProviderHealth
from collekt.models.contracts.tokens import UnifiedDomain, UnifiedToken, UnifiedTokenResponse
from collekt.providers.base import DataProvider, ProviderConfig
from collekt.providers.tzkt import TzktProvider

logger = logging.getLogger(__name__)

NUMERIC_ID_PATTERN = re.compile(r"^\d+$")
SLUG_PATTERN = re.compile(r"^[a-f0-9]{8}$")
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

_GALLERY_FIELDS = """
      id
      gallery_id
      name
      description
      slug
      logo
      items
      max_items
      owners
      published
      inserted_at
      updated_at
"""

# (variable name, GraphQL type, gallery field) per id form
_ID_FORMS = {
    "numeric": ("id", "bigint!", "id"),
    "slug": ("slug", "String!", "slug"),
    "uuid": ("gallery_id", "String!", "gallery_id"),
}


def curation_id_form(curation_id: str) -> str | None:
    """Classify a curation id as 'numeric', 'slug' or 'uuid' (None if invalid)."""
    if NUMERIC_ID_PATTERN.match(curation_id):
        return "numeric"
    if SLUG_PATTERN.match(curation_id):
        return "slug"
    if UUID_PATTERN.match(curation_id):
        return "uuid"
    return None


def token_refs_query(form: str) -> str:
    var, gql_type, field = _ID_FORMS[form]
    return f"""
  query GetCurationTokenRefs(${var}: {gql_type}) {{
    gallery_token(where: {{gallery: {{{field}: {{_eq: ${var}}}}}}}) {{
      token {{
        fa_contract
        token_id
      }}
    }}
  }}
"""


def metadata_query(form: str) -> str:
    var, gql_type, field = _ID_FORMS[form]
    return f"""
  query GetCurationMetadata(${var}: {gql_type}) {{
    gallery(where: {{{field}: {{_eq: ${var}}}}}) {{{_GALLERY_FIELDS}    }}
  }}
"""


class ObjktCurationProvider(DataProvider):
    """
    Curation bridge over the objkt.com GraphQL API.

    Domain and account operations delegate to the wrapped indexer.
    """

    supported_kinds = frozenset({SubjectKind.CURATION})

    def __init__(
        self,
        config: ProviderConfig,
        indexer: TzktProvider,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(config, client)
        self.indexer = indexer

    def _headers(self) -> dict[str, str]:
        return {**super()._headers(), "Content-Type": "application/json"}

    async def _graphql(self, query: str, variables: dict[str, Any], operation: str) -> dict[str, Any]:
        """
        Execute a GraphQL query.

        Raises:
            ProviderError: On transport failure, a GraphQL ``errors`` array or
                a response without data
        """
        body = await self._request(
            "POST",
            self.config.base_url,
            operation,
            json={"query": query, "variables": variables},
        )
        if not isinstance(body, dict):
            raise self._error(operation, "empty GraphQL response")
        errors = body.get("errors")
        if errors:
            messages = ", ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict)) or str(errors)
            raise self._error(operation, f"GraphQL errors: {messages}")
        data = body.get("data")
        if not isinstance(data, dict):
            raise self._error(operation, "no data returned from GraphQL query")
        return data

    def _variables(self, curation_id: str, operation: str) -> tuple[str, dict[str, Any]]:
        form = curation_id_form(curation_id)
        if form is None:
            raise self._error(operation, f"invalid curation id '{curation_id}'", status_code=400)
        var = _ID_FORMS[form][0]
        value: Any = int(curation_id) if form == "numeric" else curation_id
        return form, {var: value}

    # ==================== CURATIONS ====================

    async def get_curation_token_refs(self, curation_id: str) -> list[tuple[str, str]]:
        """Resolve a curation to its (fa_contract, token_id) references."""
        form, variables = self._variables(curation_id, "get_curation_token_refs")
        data = await self._graphql(token_refs_query(form), variables, "get_curation_token_refs")

        refs = []
        for item in data.get("gallery_token") or []:
            token = (item or {}).get("token") or {}
            contract = token.get("fa_contract")
            token_id = token.get("token_id")
            if contract and token_id is not None:
                refs.append((contract, str(token_id)))

        logger.info(f"Resolved {len(refs)} token references for curation {curation_id} ({form})")
        return refs

    async def get_curation_tokens(self, curation_id: str) -> list[UnifiedToken]:
        """
        Fetch every token of a curation through the indexer.

        Output follows curation order, grouped by first appearance of each
        contract. Indexer failures are re-raised under this provider's name.
        """
        refs = await self.get_curation_token_refs(curation_id)
        if not refs:
            return []

        by_contract: dict[str, list[str]] = {}
        for contract, token_id in refs:
            by_contract.setdefault(contract, []).append(token_id)

        logger.debug(f"Curation {curation_id} spans {len(by_contract)} contracts")

        tokens: list[UnifiedToken] = []
        for contract, token_ids in by_contract.items():
            try:
                fetched = await self.indexer.get_tokens(contract, token_ids)
            except ProviderError as e:
                raise ProviderError(
                    f"{self.name} get_curation_tokens failed for curation {curation_id}: {e.message}",
                    self.name,
                    "get_curation_tokens",
                    kind=e.kind,
                    status_code=e.status_code,
                    retry_after_seconds=e.retry_after_seconds,
                ) from e
            order = {token_id: i for i, token_id in enumerate(token_ids)}
            tokens.extend(sorted(fetched, key=lambda t: order.get(t.token_id, len(order))))

        if len(tokens) < len(refs):
            logger.warning(
                f"{len(refs) - len(tokens)} curation tokens missing from indexer for {curation_id}"
            )
        return tokens

    async def get_curation_metadata(self, curation_id: str) -> CurationInfo:
        """
        Fetch display metadata of a curation.

        Raises:
            ProviderError: If the curation does not exist (status 404)
        """
        form, variables = self._variables(curation_id, "get_curation_metadata")
        data = await self._graphql(metadata_query(form), variables, "get_curation_metadata")

        galleries = data.get("gallery") or []
        if not galleries:
            raise self._error(
                "get_curation_metadata", f"curation '{curation_id}' not found", status_code=404
            )
        gallery = galleries[0]
        return CurationInfo(
            id=str(gallery.get("id") or curation_id),
            gallery_id=gallery.get("gallery_id"),
            slug=gallery.get("slug"),
            name=gallery.get("name"),
            description=gallery.get("description") or "",
            logo=gallery.get("logo"),
            total_items=gallery.get("items") or 0,
            max_items=gallery.get("max_items"),
            owners=gallery.get("owners"),
            published=gallery.get("published"),
            inserted_at=gallery.get("inserted_at"),
            updated_at=gallery.get("updated_at"),
            raw=gallery,
        )

    # ==================== DELEGATED OPERATIONS ====================

    async def get_domains_by_address(
        self, address: str, options: DomainOptions | None = None
    ) -> list[UnifiedDomain]:
        return await self.indexer.get_domains_by_address(address, options)

    async def get_domains_by_name(
        self, name: str, options: DomainOptions | None = None
    ) -> list[UnifiedDomain]:
        return await self.indexer.get_domains_by_name(name, options)

    async def get_token_balances_count(
        self, address: str, filters: TokenFilters | None = None
    ) -> int:
        return await self.indexer.get_token_balances_count(address, filters)

    async def get_token_balances(
        self,
        address: str,
        pagination: PaginationOptions | None = None,
        filters: TokenFilters | None = None,
    ) -> UnifiedTokenResponse:
        return await self.indexer.get_token_balances(address, pagination, filters)

    def validate_address(self, address: str) -> bool:
        """Validate a curation id (numeric, slug or UUID)."""
        return bool(address) and curation_id_form(address) is not None

    def transform_filters(self, filters: TokenFilters) -> dict[str, Any]:
        """Map contract filters onto a ``gallery_token`` where clause."""
        where: dict[str, Any] = {}
        if filters.contract_whitelist:
            where["token"] = {"fa_contract": {"_in": sorted(filters.contract_whitelist)}}
        elif filters.contract_blacklist:
            where["token"] = {"fa_contract": {"_nin": sorted(filters.contract_blacklist)}}
        return where

    # ==================== HEALTH ====================

    async def health_check(self) -> ProviderHealth:
        start = time.perf_counter()
        try:
            await self._graphql("query HealthCheck { __typename }", {}, "health_check")
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
