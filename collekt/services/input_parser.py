"""
Input Parser

Classifies free-form user input into a collection subject:

- tz1/tz2/tz3 address                      -> USER
- KT1 address                              -> COLLECTION
- objkt.com/collections/KT1... URL         -> COLLECTION
- objkt.com/curations/... URL              -> CURATION
- numeric id or 8-hex slug                 -> CURATION
- anything else is resolved as a Tezos domain through the indexer -> USER
"""

import logging
import re

from collekt.core.exceptions import ProviderError
from collekt.models.contracts.curation import InputType, ParsedInput
from collekt.providers.base import DataProvider

logger = logging.getLogger(__name__)

WALLET_PATTERN = re.compile(r"^(tz1|tz2|tz3)[a-zA-Z0-9]{33}$")
CONTRACT_PATTERN = re.compile(r"^KT1[a-zA-Z0-9]{33}$")
CURATION_ID_PATTERN = re.compile(r"^\d+$")
CURATION_SLUG_PATTERN = re.compile(r"^[a-f0-9]{8}$")

OBJKT_COLLECTION_URL = re.compile(r"objkt\.com/collections/(KT1[a-zA-Z0-9]{33})")
OBJKT_CURATION_URLS = (
    re.compile(r"objkt\.com/curations/.*?([a-f0-9]{8})/?$"),
    re.compile(r"objkt\.com/curations/(\d+)"),
)

ROUTES = {
    InputType.USER: "/gallery/{id}",
    InputType.COLLECTION: "/collection/{id}",
    InputType.CURATION: "/curation/{id}",
}


def gallery_route(input_type: InputType, subject_id: str) -> str:
    return ROUTES[input_type].format(id=subject_id)


def is_wallet_address(value: str) -> bool:
    return bool(WALLET_PATTERN.match(value))


def is_contract_address(value: str) -> bool:
    return bool(CONTRACT_PATTERN.match(value))


class InputParser:
    """Resolve user input to a subject; domain lookups go through ``resolver``."""

    def __init__(self, resolver: DataProvider):
        self.resolver = resolver

    def _valid(
        self,
        input_type: InputType,
        subject_id: str,
        original: str,
        matched: str,
        **extra: str,
    ) -> ParsedInput:
        return ParsedInput(
            type=input_type,
            id=subject_id,
            is_valid=True,
            route=gallery_route(input_type, subject_id),
            input_type=matched,
            original_input=original,
            **extra,
        )

    @staticmethod
    def _invalid(original: str, error: str) -> ParsedInput:
        return ParsedInput(is_valid=False, error=error, original_input=original)

    async def parse(self, text: str | None) -> ParsedInput:
        trimmed = (text or "").strip()
        if not trimmed:
            return self._invalid(trimmed, "Empty input")

        if is_wallet_address(trimmed):
            return self._valid(InputType.USER, trimmed, trimmed, "address")
        if is_contract_address(trimmed):
            return self._valid(InputType.COLLECTION, trimmed, trimmed, "address")

        parsed = self._parse_objkt_url(trimmed)
        if parsed is not None:
            return parsed

        if CURATION_ID_PATTERN.match(trimmed) or CURATION_SLUG_PATTERN.match(trimmed):
            return self._valid(InputType.CURATION, trimmed, trimmed, "raw-id")

        if "/" in trimmed:
            return self._invalid(trimmed, "Unrecognized input format")

        return await self._resolve_domain(trimmed)

    def _parse_objkt_url(self, text: str) -> ParsedInput | None:
        match = OBJKT_COLLECTION_URL.search(text)
        if match:
            contract = match.group(1)
            return self._valid(
                InputType.COLLECTION, contract, text, "objkt-collection", extracted_id=contract
            )

        for pattern in OBJKT_CURATION_URLS:
            match = pattern.search(text)
            if match:
                curation_id = match.group(1)
                return self._valid(
                    InputType.CURATION, curation_id, text, "objkt-curation", extracted_id=curation_id
                )

        if "objkt.com/" in text:
            return self._invalid(text, "Unrecognized objkt.com URL format")
        return None

    async def _resolve_domain(self, name: str) -> ParsedInput:
        try:
            domains = await self.resolver.get_domains_by_name(name.lower())
        except ProviderError as e:
            logger.warning(f"Domain resolution failed for {name}: {e}")
            return self._invalid(name, f"Domain resolution failed: {e.message}")

        for domain in domains:
            if domain.resolved_address:
                return self._valid(
                    InputType.USER,
                    domain.resolved_address,
                    name,
                    "domain",
                    resolved_address=domain.resolved_address,
                )
        return self._invalid(name, "Domain not found")
