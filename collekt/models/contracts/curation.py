"""
Curation and input-resolution contract models for collekt.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from collekt.models.contracts.base import CamelModel


class CurationInfo(CamelModel):
    """Display metadata of an objkt.com curation (gallery)"""
    id: str
    gallery_id: str | None = None
    slug: str | None = None
    name: str | None = None
    description: str | None = None
    logo: str | None = None
    total_items: int = 0
    max_items: int | None = None
    owners: int | None = Field(default=None, description="Number of distinct owners")
    published: bool | None = None
    inserted_at: datetime | None = None
    updated_at: datetime | None = None
    raw: dict[str, Any] | None = None


class InputType(str, Enum):
    """Subject kind a free-form input resolved to"""
    USER = "USER"
    COLLECTION = "COLLECTION"
    CURATION = "CURATION"


class ParsedInput(CamelModel):
    """Classification of a free-form user input"""
    type: InputType | None = None
    id: str | None = None
    is_valid: bool = False
    error: str | None = None
    route: str | None = None
    input_type: str | None = Field(default=None, description="Which input form matched (address, url, domain, ...)")
    original_input: str
    resolved_address: str | None = None
    extracted_id: str | None = None
