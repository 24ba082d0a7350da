"""
FastAPI dependencies.

Route handlers depend on these aliases so tests can swap implementations via
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from collekt.services.input_parser import InputParser
from collekt.services.orchestrator import DataOrchestrator, get_orchestrator


def get_input_parser(
    orchestrator: Annotated[DataOrchestrator, Depends(get_orchestrator)],
) -> InputParser:
    """Input parser resolving domains through the highest-priority provider."""
    return InputParser(orchestrator.providers[0])


Orchestrator = Annotated[DataOrchestrator, Depends(get_orchestrator)]
Parser = Annotated[InputParser, Depends(get_input_parser)]
