"""
Provider Registry

Builds the configured provider set. Providers are ordered by ascending
priority; the orchestrator tries them in that order.
"""

import logging

from collekt.config import Settings, get_settings
from collekt.providers.base import DataProvider, ProviderConfig
from collekt.providers.objkt import ObjktCurationProvider
from collekt.providers.tzkt import TzktProvider

logger = logging.getLogger(__name__)

TZKT_PRIORITY = 1
OBJKT_PRIORITY = 2


def create_providers(settings: Settings | None = None) -> list[DataProvider]:
    """
    Create the default providers: the TzKT indexer and the objkt.com
    curation bridge layered on top of it.
    """
    settings = settings or get_settings()

    tzkt = TzktProvider(
        ProviderConfig.from_settings(
            settings,
            name="tzkt",
            priority=TZKT_PRIORITY,
            base_url=settings.tzkt_base_url,
            api_key=settings.tzkt_api_key,
        ),
        batch_timeout_seconds=settings.provider_batch_timeout_seconds,
    )
    objkt = ObjktCurationProvider(
        ProviderConfig.from_settings(
            settings,
            name="objkt",
            priority=OBJKT_PRIORITY,
            base_url=settings.objkt_graphql_url,
        ),
        indexer=tzkt,
    )

    providers = sort_providers([tzkt, objkt])
    logger.info(f"Registered providers: {', '.join(p.name for p in providers)}")
    return providers


def sort_providers(providers: list[DataProvider]) -> list[DataProvider]:
    """Order providers by ascending priority (stable for ties)."""
    return sorted(providers, key=lambda p: p.priority)
