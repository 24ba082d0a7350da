"""
collekt API - FastAPI Application

Main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from collekt import __version__
from collekt.config import get_settings
from collekt.routers import (
    cache_router,
    collections_router,
    health_router,
    resolve_router,
)
from collekt.services.orchestrator import close_orchestrator, get_orchestrator

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Suppress noisy third-party loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the orchestrator (providers + cache store) on startup and
    releases its connections on shutdown.
    """
    # Startup
    logger.info("Starting collekt API...")
    settings = get_settings()

    orchestrator = get_orchestrator()
    logger.info(
        f"Orchestrator ready with providers: {', '.join(p.name for p in orchestrator.providers)} "
        f"(cache: {settings.cache_backend}, filter profile: {settings.filter_profile})"
    )

    logger.info(f"collekt API started in {settings.environment} mode")

    yield

    # Shutdown
    logger.info("Shutting down collekt API...")
    await close_orchestrator()
    logger.info("collekt API shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="collekt API",
        description="Token collection orchestration and caching for Tezos",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Register routers
    app.include_router(health_router)
    app.include_router(collections_router)
    app.include_router(cache_router)
    app.include_router(resolve_router)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "name": "collekt API",
            "version": __version__,
            "docs": "/docs",
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "collekt.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
