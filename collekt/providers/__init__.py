"""
Upstream token providers.
"""

from collekt.providers.base import DataProvider, ProviderConfig, RateLimitConfig
from collekt.providers.objkt import ObjktCurationProvider
from collekt.providers.registry import create_providers
from collekt.providers.tzkt import TzktProvider

__all__ = [
    "DataProvider",
    "ObjktCurationProvider",
    "ProviderConfig",
    "RateLimitConfig",
    "TzktProvider",
    "create_providers",
]
