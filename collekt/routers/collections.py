"""
Collections Router

Cache-first token collection endpoints for the three subject kinds:
- GET /collection  - live tokens of a contract
- GET /user        - tokens held by an account (oldest first)
- GET /curation    - tokens of an objkt.com curation
"""

import logging
from typing import Any

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from collekt.core.dependencies import Orchestrator
from collekt.core.exceptions import CollektError, InvalidInputError
from collekt.models.contracts.collections import CollectionResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Collections"])


def collection_payload(result: CollectionResult) -> dict[str, Any]:
    """Serialize a collection result into the public camelCase response body."""
    tokens = [
        t.model_dump(mode="json", by_alias=True) if isinstance(t, BaseModel) else t
        for t in result.tokens
    ]
    data: dict[str, Any] = {
        "tokens": tokens,
        "pagination": result.pagination.model_dump(mode="json", by_alias=True),
        "cacheInfo": {
            "hit": result.cache.hit,
            "source": result.cache.source.value,
            "buildTimeMs": result.cache.build_time_ms,
        },
        "performance": {
            "totalTimeMs": result.performance.total_time_ms,
            "fetchTimeMs": result.performance.fetch_time_ms,
            "filterTimeMs": result.performance.filter_time_ms,
        },
        "dataSources": result.data_sources,
    }
    if result.filtering is not None:
        data["filtering"] = result.filtering.model_dump(mode="json", by_alias=True)
    return {"success": True, "data": data}


def bad_request(error: InvalidInputError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": error.message})


def server_error(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": message},
    )


@router.get(
    "/collection",
    summary="Get contract collection",
    description="Returns one page of the live tokens of a contract",
)
async def get_collection(
    orchestrator: Orchestrator,
    contract_address: str | None = Query(None, alias="contractAddress"),
    page: int = Query(1),
    page_size: int | None = Query(None, alias="pageSize"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
):
    try:
        result = await orchestrator.get_collection_token_collection(
            contract_address, page=page, page_size=page_size, force_refresh=force_refresh
        )
    except InvalidInputError as e:
        return bad_request(e)
    except CollektError as e:
        logger.error(f"Collection request failed for {contract_address}: {e.message}")
        return server_error(e.message)
    except Exception as e:
        logger.error(f"Unexpected error serving collection {contract_address}: {e}", exc_info=True)
        return server_error(str(e))

    return collection_payload(result)


@router.get(
    "/user",
    summary="Get account collection",
    description="Returns one page of the tokens held by an account, oldest acquisition first",
)
async def get_user_collection(
    orchestrator: Orchestrator,
    address: str | None = Query(None),
    page: int = Query(1),
    page_size: int | None = Query(None, alias="pageSize"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
):
    try:
        result = await orchestrator.get_token_collection(
            address,
            page=page,
            page_size=page_size,
            force_refresh=force_refresh,
            sort_chronologically=True,
        )
    except InvalidInputError as e:
        return bad_request(e)
    except CollektError as e:
        logger.error(f"User collection request failed for {address}: {e.message}")
        return server_error(e.message)
    except Exception as e:
        logger.error(f"Unexpected error serving user collection {address}: {e}", exc_info=True)
        return server_error(str(e))

    return collection_payload(result)


@router.get(
    "/curation",
    summary="Get curation collection",
    description="Returns one page of the tokens of an objkt.com curation",
)
async def get_curation_collection(
    orchestrator: Orchestrator,
    curation_id: str | None = Query(None, alias="curationId"),
    page: int = Query(1),
    page_size: int | None = Query(None, alias="pageSize"),
    force_refresh: bool = Query(False, alias="forceRefresh"),
):
    try:
        result = await orchestrator.get_curation_token_collection(
            curation_id, page=page, page_size=page_size, force_refresh=force_refresh
        )
    except InvalidInputError as e:
        return bad_request(e)
    except CollektError as e:
        logger.error(f"Curation request failed for {curation_id}: {e.message}")
        return server_error(e.message)
    except Exception as e:
        logger.error(f"Unexpected error serving curation {curation_id}: {e}", exc_info=True)
        return server_error(str(e))

    return collection_payload(result)


@router.get(
    "/curation/info",
    summary="Get curation metadata",
    description="Returns display metadata (name, logo, item count) of a curation",
)
async def get_curation_info(
    orchestrator: Orchestrator,
    curation_id: str | None = Query(None, alias="curationId"),
):
    try:
        info = await orchestrator.get_curation_info(curation_id)
    except InvalidInputError as e:
        return bad_request(e)
    except CollektError as e:
        logger.error(f"Curation info request failed for {curation_id}: {e.message}")
        return server_error(e.message)
    except Exception as e:
        logger.error(f"Unexpected error describing curation {curation_id}: {e}", exc_info=True)
        return server_error(str(e))

    return {"success": True, "data": info.model_dump(mode="json", by_alias=True, exclude={"raw"})}
