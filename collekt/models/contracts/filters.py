"""
Token filter contract models for collekt.
"""

import hashlib
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from collekt.core.exceptions import InvalidFilterConfigError

CONTRACT_ADDRESS_PREFIX = "KT1"
CONTRACT_ADDRESS_LENGTH = 36


def is_contract_address(value: str) -> bool:
    return value.startswith(CONTRACT_ADDRESS_PREFIX) and len(value) == CONTRACT_ADDRESS_LENGTH


class TokenFilters(BaseModel):
    """
    Declarative token filter specification.

    Two filter specs are the same filter exactly when their canonical JSON
    matches; contract lists are order-insensitive.
    """
    model_config = ConfigDict(frozen=True)

    balance_gt: int | None = Field(default=None, description="Minimum balance (exclusive)")
    require_metadata: bool = Field(default=False, description="Exclude tokens without metadata")
    exclude_utility_tokens: bool = Field(default=False, description="Exclude fungible/utility tokens")
    contract_whitelist: tuple[str, ...] = Field(default=(), description="Only keep these contracts when non-empty")
    contract_blacklist: tuple[str, ...] = Field(default=(), description="Drop these contracts")
    require_image: bool = False
    require_name: bool = False
    max_supply: int | None = Field(default=None, description="Utility threshold on total supply")
    exclude_high_decimals: bool = Field(default=False, description="Treat decimals > 0 as utility")
    exclude_should_prefer_symbol: bool = Field(default=False, description="Treat shouldPreferSymbol as utility")
    select_fields: tuple[str, ...] | None = Field(default=None, description="Project tokens to these fields")

    @model_validator(mode="after")
    def _validate(self) -> "TokenFilters":
        for name in ("balance_gt", "max_supply"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise InvalidFilterConfigError(f"{name} must be >= 0, got {value}")
        for name in ("contract_whitelist", "contract_blacklist"):
            invalid = [c for c in getattr(self, name) if not is_contract_address(c)]
            if invalid:
                raise InvalidFilterConfigError(
                    f"Invalid contract address in {name}: {', '.join(invalid)}"
                )
        if self.select_fields is not None and not self.select_fields:
            raise InvalidFilterConfigError("select_fields must not be empty when set")
        return self

    def canonical(self) -> dict[str, Any]:
        data = self.model_dump()
        data["contract_whitelist"] = sorted(set(self.contract_whitelist))
        data["contract_blacklist"] = sorted(set(self.contract_blacklist))
        if self.select_fields is not None:
            data["select_fields"] = list(self.select_fields)
        return data

    def canonical_json(self) -> str:
        return json.dumps(self.canonical(), sort_keys=True, separators=(",", ":"))

    def filter_hash(self) -> str:
        """Stable 16-character digest of the canonical form."""
        return hashlib.sha256(self.canonical_json().encode()).hexdigest()[:16]


class DomainOptions(BaseModel):
    """Options for domain lookups"""
    reverse: bool | None = Field(default=None, description="Only reverse records when True")
    limit: int = Field(default=10, ge=1, le=10000)
