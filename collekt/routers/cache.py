"""
Cache Router

Manual cache management:
- POST /cache/clear  - drop the active-filter entry (or every entry) of a subject
- GET  /cache/stats  - hit/miss counters and build timings
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import Field

from collekt.core.dependencies import Orchestrator
from collekt.core.exceptions import InvalidInputError
from collekt.models.contracts.base import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["Cache"])


class CacheClearRequest(CamelModel):
    """Request to clear cached collections of a subject"""
    address: str | None = Field(default=None, description="Address, contract or curation id")
    clear_all: bool = Field(default=False, description="Clear every filter configuration, not just the active one")


@router.post(
    "/clear",
    summary="Clear cached collections",
    description="Clears the active-filter entry of a subject, or every entry when clearAll is set",
)
async def clear_cache(request: CacheClearRequest, orchestrator: Orchestrator):
    logger.info(f"Cache clear request for {request.address} (clearAll: {request.clear_all})")
    try:
        if request.clear_all:
            removed = await orchestrator.clear_all_cache(request.address)
        else:
            removed = await orchestrator.invalidate_cache(request.address)
    except InvalidInputError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": e.message})
    except Exception as e:
        logger.error(f"Cache clear error for {request.address}: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to clear cache", "details": str(e)},
        )

    return {
        "success": True,
        "message": f"Cache cleared for {request.address}",
        "clearedAll": request.clear_all,
        "removed": removed,
    }


@router.get("/stats", summary="Cache statistics")
async def cache_stats(orchestrator: Orchestrator):
    return {"success": True, "data": orchestrator.get_cache_stats()}
