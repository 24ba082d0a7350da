"""
Pydantic contracts for the collekt API.
"""

from collekt.models.contracts.base import CamelModel
from collekt.models.contracts.collections import (
    CacheEntry,
    CacheEntryMetadata,
    CacheInfo,
    CacheSource,
    CollectionResult,
    CollectionToken,
    FilterStats,
    PaginationInfo,
    PaginationOptions,
    PerformanceInfo,
    SortOptions,
    SubjectKind,
)
from collekt.models.contracts.curation import CurationInfo, InputType, ParsedInput
from collekt.models.contracts.filters import DomainOptions, TokenFilters, is_contract_address
from collekt.models.contracts.health import GeneralHealthResponse, HealthCheck, ProviderHealth
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

__all__ = [
    "CacheEntry",
    "CamelModel",
    "CacheEntryMetadata",
    "CacheInfo",
    "CacheSource",
    "CollectionResult",
    "CollectionToken",
    "CurationInfo",
    "DataSource",
    "DomainOptions",
    "FilterStats",
    "GeneralHealthResponse",
    "HealthCheck",
    "InputType",
    "PaginationInfo",
    "PaginationOptions",
    "ParsedInput",
    "PerformanceInfo",
    "ProviderHealth",
    "SortOptions",
    "SubjectKind",
    "TokenAttribute",
    "TokenDimensions",
    "TokenFilters",
    "TokenFormat",
    "TokenStandard",
    "UnifiedDomain",
    "UnifiedMetadata",
    "UnifiedToken",
    "UnifiedTokenResponse",
    "is_contract_address",
]
