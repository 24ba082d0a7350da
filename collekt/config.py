"""
Application Configuration

Uses pydantic-settings for environment variable loading with validation.
All configuration is centralized here for easy management.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="COLLEKT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "testing", "production"] = Field(
        default="development",
        description="Runtime environment"
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level for the API process"
    )

    # ==========================================================================
    # Cache
    # ==========================================================================
    cache_backend: Literal["redis", "memory"] = Field(
        default="redis",
        description="Cache store backend ('memory' keeps entries in-process)"
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )

    cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="TTL for cached collections in seconds (0 = never expire)"
    )

    compression_enabled: bool = Field(
        default=True,
        description="Gzip cached collections above the compression threshold"
    )

    compression_threshold_bytes: int = Field(
        default=1024,
        ge=0,
        description="Only compress payloads larger than this many bytes"
    )

    compression_level: int = Field(
        default=6,
        ge=1,
        le=9,
        description="Gzip compression level (1 = fastest, 9 = smallest)"
    )

    # ==========================================================================
    # Upstream Providers
    # ==========================================================================
    tzkt_base_url: str = Field(
        default="https://api.tzkt.io",
        description="TzKT indexer base URL"
    )

    tzkt_api_key: str | None = Field(
        default=None,
        description="Optional TzKT API key (sent as a header when set)"
    )

    objkt_graphql_url: str = Field(
        default="https://data.objkt.com/v3/graphql",
        description="objkt.com GraphQL endpoint used to resolve curations"
    )

    provider_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single upstream request"
    )

    provider_batch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single batch request when falling back to batched fetching"
    )

    provider_max_retries: int = Field(
        default=3,
        ge=1,
        description="Total attempts per upstream request, including the first"
    )

    provider_retry_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Base delay between retry attempts in milliseconds"
    )

    provider_backoff: Literal["linear", "exponential"] = Field(
        default="linear",
        description="Backoff strategy between retry attempts"
    )

    provider_requests_per_second: float = Field(
        default=10.0,
        gt=0,
        description="Outbound request rate per provider instance"
    )

    provider_burst_size: int = Field(
        default=10,
        ge=1,
        description="Outbound request burst allowance per provider instance"
    )

    enable_fallback: bool = Field(
        default=True,
        description="Fall back to the next provider by priority when one fails"
    )

    # ==========================================================================
    # Collections
    # ==========================================================================
    default_page_size: int = Field(
        default=20,
        ge=1,
        description="Page size used when a request does not specify one"
    )

    max_page_size: int = Field(
        default=500,
        ge=1,
        description="Upper bound for a requested page size"
    )

    filter_profile: Literal["production", "development"] = Field(
        default="production",
        description="Default token filter profile applied to every collection"
    )

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host"
    )

    port: int = Field(
        default=8000,
        description="Server port"
    )

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @computed_field
    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
