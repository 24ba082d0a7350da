"""
Token Filter Engine

Applies a TokenFilters configuration to a complete token set. Filtering happens on the
full collection before caching and pagination, so page boundaries and
``total_items`` stay stable for a given filter configuration.

Predicates run per token in a fixed order and the first failing one names
the exclusion reason:

    balance -> metadata -> contract -> image -> name -> utility
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Literal

from collekt.core.exceptions import InvalidFilterConfigError
from collekt.models.contracts.collections import FilterStats
from collekt.models.contracts.filters import TokenFilters
from collekt.models.contracts.tokens import UnifiedToken

logger = logging.getLogger(__name__)

ExclusionReason = Literal["balance", "metadata", "contract", "image", "name", "utility"]
REASONS: tuple[ExclusionReason, ...] = ("balance", "metadata", "contract", "image", "name", "utility")


# ==================== FILTER PROFILES ====================

VENFT_CONTRACT = "KT18kkvmUoefkdok5mrjU6fxsm7xmumy1NEw"

PRODUCTION_FILTERS = TokenFilters(
    require_metadata=True,
    exclude_utility_tokens=True,
    exclude_should_prefer_symbol=True,
    exclude_high_decimals=True,
    max_supply=10000,
    contract_blacklist=(
        VENFT_CONTRACT,
        "KT1K9gCRgaLRFKTErYt1wVxA3Frb9FjasjTV",  # Kolibri governance
        "KT1JBmbKbqTyKaD6ULGZGSBKirZOGZH8DkAS",  # Quipu governance
        "KT1GBZmSxmnKJXGMdMLbugPfLyUPmuLSMwKS",  # Tezos Domains
    ),
)

DEVELOPMENT_FILTERS = TokenFilters(
    require_metadata=True,
    contract_blacklist=(VENFT_CONTRACT,),
)

FILTER_PROFILES: dict[str, TokenFilters] = {
    "production": PRODUCTION_FILTERS,
    "development": DEVELOPMENT_FILTERS,
}


def get_filter_profile(name: str) -> TokenFilters:
    """
    Look up a named filter preset.

    Raises:
        InvalidFilterConfigError: If the profile does not exist
    """
    try:
        return FILTER_PROFILES[name]
    except KeyError:
        raise InvalidFilterConfigError(
            f"Unknown filter profile '{name}' (expected one of: {', '.join(FILTER_PROFILES)})"
        ) from None


# ==================== RESULT ====================


@dataclass
class FilterResult:
    """Outcome of one filter run; ``tokens`` keeps input order."""

    tokens: list[UnifiedToken | dict[str, Any]]
    original_count: int
    filtered_count: int
    excluded: dict[str, int] = field(default_factory=dict)
    filters_applied: list[str] = field(default_factory=list)
    filter_hash: str = ""

    def summary(self) -> str:
        removed = ", ".join(f"{k}={v}" for k, v in self.excluded.items() if v)
        return (
            f"{self.original_count} -> {self.filtered_count} tokens"
            + (f" (removed {removed})" if removed else "")
        )

    def to_stats(self) -> FilterStats:
        return FilterStats(
            original_count=self.original_count,
            filtered_count=self.filtered_count,
            excluded=dict(self.excluded),
            filters_applied=list(self.filters_applied),
            filter_hash=self.filter_hash,
        )


# ==================== PREDICATES ====================


def _to_decimal(value: str | int | None) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _passes_balance(token: UnifiedToken, filters: TokenFilters) -> bool:
    balance = _to_decimal(token.balance) or Decimal(0)
    if balance <= 0:
        return False
    if filters.balance_gt is not None and balance <= filters.balance_gt:
        return False
    return True


def _passes_metadata(token: UnifiedToken, filters: TokenFilters) -> bool:
    return not filters.require_metadata or token.metadata is not None


def _passes_contract(token: UnifiedToken, filters: TokenFilters) -> bool:
    # a non-empty whitelist is exhaustive and overrides the blacklist
    if filters.contract_whitelist:
        return token.contract_address in filters.contract_whitelist
    return token.contract_address not in filters.contract_blacklist


def _passes_image(token: UnifiedToken, filters: TokenFilters) -> bool:
    return not filters.require_image or token.has_image


def _passes_name(token: UnifiedToken, filters: TokenFilters) -> bool:
    if not filters.require_name:
        return True
    return bool(token.metadata and token.metadata.name and token.metadata.name.strip())


def is_utility_token(token: UnifiedToken, filters: TokenFilters) -> bool:
    """Whether a token matches the utility rules enabled in ``filters``."""
    metadata = token.metadata
    if metadata is not None:
        if metadata.is_utility_token:
            return True
        if filters.exclude_should_prefer_symbol and metadata.should_prefer_symbol:
            return True
        if filters.exclude_high_decimals and metadata.decimals is not None and metadata.decimals > 0:
            return True

    if filters.max_supply is not None:
        supply = _to_decimal(token.total_supply)
        if supply is None and metadata is not None:
            supply = _to_decimal(metadata.supply)
        if supply is not None and supply > filters.max_supply:
            return True

    return False


def _passes_utility(token: UnifiedToken, filters: TokenFilters) -> bool:
    return not filters.exclude_utility_tokens or not is_utility_token(token, filters)


_PREDICATES: tuple[tuple[ExclusionReason, Callable[[UnifiedToken, TokenFilters], bool]], ...] = (
    ("balance", _passes_balance),
    ("metadata", _passes_metadata),
    ("contract", _passes_contract),
    ("image", _passes_image),
    ("name", _passes_name),
    ("utility", _passes_utility),
)


def exclusion_reason(token: UnifiedToken, filters: TokenFilters) -> ExclusionReason | None:
    """Name of the first predicate the token fails, or None if it passes."""
    for reason, predicate in _PREDICATES:
        if not predicate(token, filters):
            return reason
    return None


# ==================== ENGINE ====================


def has_active_filters(filters: TokenFilters | None) -> bool:
    """Whether any predicate beyond the mandatory positive balance is enabled."""
    if filters is None:
        return False
    return any(
        (
            filters.balance_gt is not None,
            filters.require_metadata,
            filters.exclude_utility_tokens,
            bool(filters.contract_whitelist),
            bool(filters.contract_blacklist),
            filters.require_image,
            filters.require_name,
            filters.select_fields is not None,
        )
    )


def select_fields(token: UnifiedToken, fields: tuple[str, ...]) -> dict[str, Any]:
    """Project a token onto the named fields (unknown names are skipped)."""
    data = token.model_dump(mode="json")
    return {name: data[name] for name in fields if name in data}


def apply_filters(tokens: list[UnifiedToken], filters: TokenFilters) -> FilterResult:
    """
    Filter a complete token set.

    Deterministic and side-effect free. Surviving tokens keep their input
    order; ``select_fields`` projection is applied last.

    Args:
        tokens: Full, unpaginated token set
        filters: Filter specification

    Returns:
        FilterResult with survivors and per-reason exclusion counts
    """
    excluded: dict[str, int] = {reason: 0 for reason in REASONS}
    survivors: list[UnifiedToken] = []

    for token in tokens:
        reason = exclusion_reason(token, filters)
        if reason is None:
            survivors.append(token)
        else:
            excluded[reason] += 1

    output: list[UnifiedToken | dict[str, Any]] = list(survivors)
    if filters.select_fields is not None:
        output = [select_fields(t, filters.select_fields) for t in survivors]

    result = FilterResult(
        tokens=output,
        original_count=len(tokens),
        filtered_count=len(output),
        excluded=excluded,
        filters_applied=[reason for reason in REASONS if excluded[reason]],
        filter_hash=filters.filter_hash(),
    )
    logger.debug(f"Filter engine: {result.summary()}")
    return result
