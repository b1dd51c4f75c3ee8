from abc import ABC, abstractmethod
from typing import Any, Dict

from .shape import FactShape


class PageOracle(ABC):
    """
    Page-understanding boundary used by the removal workflow.

    navigate raises NavigationError, extract_facts raises ExtractionError,
    capture_evidence raises EvidenceError. perform_action never raises:
    whether the action worked is only observable through later extraction.
    """

    @abstractmethod
    async def navigate(self, url: str) -> None:
        ...

    @abstractmethod
    async def extract_facts(self, instruction: str, shape: FactShape) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def perform_action(self, instruction: str) -> None:
        ...

    @abstractmethod
    async def capture_evidence(self) -> bytes:
        ...
