"""
Token contract models for collekt.

Every provider normalizes its upstream shape into these models; no caller
ever sees a provider-native response.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import ConfigDict, Field, computed_field

from collekt.models.contracts.base import CamelModel


# ==================== ENUMS ====================


class TokenStandard(str, Enum):
    """Token standards recognized on Tezos"""
    FA12 = "fa1.2"
    FA2 = "fa2"
    UNKNOWN = "unknown"


# ==================== SOURCE MODELS ====================


class DataSource(CamelModel):
    """Where a normalized record came from"""
    provider: Literal["tzkt", "objkt", "custom"] = Field(..., description="Upstream provider name")
    version: str = Field(default="v1", description="Upstream API version")
    endpoint: str = Field(..., description="Base URL of the upstream API")
    priority: int = Field(default=1, description="Provider priority (lower is tried first)")


# ==================== METADATA MODELS ====================


class TokenDimensions(CamelModel):
    width: int | None = None
    height: int | None = None


class TokenFormat(CamelModel):
    """One media rendition of a token"""
    uri: str
    mime_type: str | None = None
    file_size: int | None = None
    hash: str | None = None
    dimensions: TokenDimensions | None = None


class TokenAttribute(CamelModel):
    trait_type: str
    value: Any = None


class UnifiedMetadata(CamelModel):
    """
    Best-effort normalized subset of token metadata.

    Absence of any field is valid. The untouched upstream document is kept
    in ``raw``.
    """
    name: str | None = None
    description: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    image: str | None = None
    artifact_uri: str | None = None
    display_uri: str | None = None
    thumbnail_uri: str | None = None
    formats: list[TokenFormat] = Field(default_factory=list)
    creators: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    attributes: list[TokenAttribute] = Field(default_factory=list)
    supply: str | None = None
    should_prefer_symbol: bool = False
    is_utility_token: bool = False
    raw: dict[str, Any] | None = None


# ==================== TOKEN MODELS ====================


class UnifiedToken(CamelModel):
    """Normalized token holding, produced only by provider normalization"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identity '{contract}_{token_id}'")
    contract_address: str
    contract_alias: str | None = None
    token_id: str
    balance: str = Field(..., description="Holder balance as a decimal string")
    standard: TokenStandard = TokenStandard.UNKNOWN
    metadata: UnifiedMetadata | None = Field(
        default=None, description="None when the upstream token has no metadata"
    )
    source: DataSource
    fetched_at: datetime
    first_acquired_at: datetime | None = None
    last_transfer_at: datetime | None = None
    total_supply: str | None = None

    @staticmethod
    def make_id(contract_address: str, token_id: str) -> str:
        return f"{contract_address}_{token_id}"

    @computed_field
    @property
    def display_image(self) -> str | None:
        """Best image URI for display, preferring the display rendition."""
        if self.metadata is None:
            return None
        return (
            self.metadata.display_uri
            or self.metadata.artifact_uri
            or self.metadata.thumbnail_uri
            or self.metadata.image
        )

    @computed_field
    @property
    def display_name(self) -> str:
        if self.metadata and self.metadata.name and self.metadata.name.strip():
            return self.metadata.name
        return f"Token #{self.token_id}"

    @property
    def has_image(self) -> bool:
        return self.display_image is not None

    @property
    def has_metadata(self) -> bool:
        return self.metadata is not None

    @property
    def sort_key(self) -> tuple:
        """Chronological key: first acquisition, last transfer, then identity."""
        first = self.first_acquired_at.timestamp() if self.first_acquired_at else float("inf")
        last = self.last_transfer_at.timestamp() if self.last_transfer_at else float("inf")
        token_num = int(self.token_id) if self.token_id.isdigit() else 0
        return (first, last, self.contract_address, token_num, self.token_id)


class UnifiedTokenResponse(CamelModel):
    """One provider response for a token query"""
    tokens: list[UnifiedToken] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False
    source: DataSource


# ==================== DOMAIN MODELS ====================


class UnifiedDomain(CamelModel):
    """A name-service domain as reported by the indexer"""
    name: str
    owner_address: str | None = None
    resolved_address: str | None = None
    is_reverse: bool = False
    expires_at: datetime | None = None
    source: DataSource
    fetched_at: datetime
