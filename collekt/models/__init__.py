"""
collekt Models

Pydantic contracts (API request/response and internal records):
    from collekt.models import UnifiedToken, TokenFilters
    from collekt.models.contracts.tokens import UnifiedToken  # Granular access
"""

from collekt.models.contracts import *  # noqa: F401,F403
from collekt.models.contracts import __all__  # noqa: F401
