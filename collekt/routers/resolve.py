"""
Resolve Router

Turns free-form input (address, objkt.com URL, curation id, domain) into a
collection route.
"""

from fastapi import APIRouter, Query

from collekt.core.dependencies import Parser
from collekt.models.contracts.curation import ParsedInput

router = APIRouter(prefix="/resolve", tags=["Resolve"])


@router.get(
    "",
    response_model=ParsedInput,
    response_model_by_alias=True,
    summary="Resolve user input",
)
async def resolve(
    parser: Parser,
    text: str = Query("", alias="input", description="Address, URL, curation id or domain"),
) -> ParsedInput:
    return await parser.parse(text)
