"""
Base model for collekt contracts.

API payloads use camelCase keys; Python code and cached entries use the
snake_case field names. Both are accepted on input.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
