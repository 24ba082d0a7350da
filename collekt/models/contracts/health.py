"""
Health check contract models for collekt.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from collekt.models.contracts.base import CamelModel


class ProviderHealth(CamelModel):
    """Result of an explicit provider health check"""
    is_healthy: bool
    last_check: datetime
    response_time_ms: float | None = None
    error_message: str | None = None


class HealthCheck(CamelModel):
    """Individual health check result"""
    service: str = Field(..., description="Display name of the service (e.g., 'tzkt', 'Cache')")
    healthy: bool = Field(..., description="Whether the service is healthy")
    message: str = Field(..., description="Health check message")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional service-specific metadata")


class GeneralHealthResponse(CamelModel):
    """General health check response with multiple service checks"""
    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., description="Overall system health status")
    service: str = Field(default="collekt API", description="Service name")
    timestamp: datetime = Field(..., description="Health check timestamp")
    checks: list[HealthCheck] = Field(..., description="Individual service health checks")
