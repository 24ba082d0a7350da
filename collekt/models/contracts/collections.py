"""
Collection contract models for collekt.

Pagination, cache entries and the per-request collection result.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import Discriminator, Field, Tag, ValidationInfo, field_validator

from collekt.models.contracts.base import CamelModel
from collekt.models.contracts.tokens import UnifiedToken


def _token_kind(value: Any) -> str:
    return "token" if isinstance(value, UnifiedToken) else "projection"


# Projected tokens (select_fields) are plain dicts and stay dicts, whatever fields they carry.
CollectionToken = Annotated[
    Union[Annotated[UnifiedToken, Tag("token")], Annotated[dict[str, Any], Tag("projection")]],
    Discriminator(_token_kind),
]


class SubjectKind(str, Enum):
    """What a collection is keyed by"""
    ADDRESS = "address"
    CONTRACT = "contract"
    CURATION = "curation"


class CacheSource(str, Enum):
    CACHE = "cache"
    API = "api"
    HYBRID = "hybrid"


# ==================== PAGINATION MODELS ====================


class SortOptions(CamelModel):
    field: str
    direction: Literal["asc", "desc"] = "asc"


class PaginationOptions(CamelModel):
    """Offset/limit window over a result set"""
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1)
    sort: SortOptions | None = None

    @classmethod
    def from_page(cls, page: int, page_size: int, sort: SortOptions | None = None) -> "PaginationOptions":
        return cls(offset=(page - 1) * page_size, limit=page_size, sort=sort)


class PaginationInfo(CamelModel):
    """Pagination block of a collection result; end_index is inclusive"""
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
    start_index: int
    end_index: int


# ==================== CACHE MODELS ====================


class CacheEntryMetadata(CamelModel):
    built_at: datetime
    build_time_ms: float
    total_items: int
    filter_config_hash: str
    source: CacheSource = CacheSource.API
    providers: list[str] = Field(default_factory=list)


class CacheEntry(CamelModel):
    """
    Stored result of one subject+filter build.

    ``tokens`` is always the full filtered set before pagination. Entries
    are replaced, never mutated. ``projected`` marks entries built with
    ``select_fields``, whose tokens are plain dicts.
    """
    projected: bool = False
    tokens: list[CollectionToken] = Field(default_factory=list)
    metadata: CacheEntryMetadata

    @field_validator("tokens", mode="before")
    @classmethod
    def restore_tokens(cls, value: Any, info: ValidationInfo) -> Any:
        # stored entries come back as dicts; rebuild full tokens unless projected
        if info.data.get("projected") or not isinstance(value, list):
            return value
        return [UnifiedToken.model_validate(t) if isinstance(t, dict) else t for t in value]


# ==================== RESULT MODELS ====================


class CacheInfo(CamelModel):
    hit: bool
    source: CacheSource
    build_time_ms: float
    cache_key: str


class PerformanceInfo(CamelModel):
    total_time_ms: float
    fetch_time_ms: float = 0.0
    filter_time_ms: float = 0.0
    cache_time_ms: float = 0.0


class FilterStats(CamelModel):
    """Summary of one filter engine run"""
    original_count: int
    filtered_count: int
    excluded: dict[str, int] = Field(default_factory=dict)
    filters_applied: list[str] = Field(default_factory=list)
    filter_hash: str


class CollectionResult(CamelModel):
    """Response of one orchestrator call; built fresh per request"""
    tokens: list[CollectionToken] = Field(default_factory=list)
    pagination: PaginationInfo
    cache: CacheInfo
    performance: PerformanceInfo
    filtering: FilterStats | None = None
    data_sources: list[str] = Field(default_factory=list)
    fetched_at: datetime
