"""
HTTP routers.
"""

from collekt.routers.cache import router as cache_router
from collekt.routers.collections import router as collections_router
from collekt.routers.health import router as health_router
from collekt.routers.resolve import router as resolve_router

__all__ = [
    "cache_router",
    "collections_router",
    "health_router",
    "resolve_router",
]
