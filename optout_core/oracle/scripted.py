"""
Deterministic in-memory oracle.

Answers extract_facts from per-shape queues, records every call in order and
can be told to fail navigation or evidence capture. Used by the test-suite and
by the CLI's --dry-run mode.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..exceptions import EvidenceError, ExtractionError, NavigationError
from .base import PageOracle
from .shape import BOOLEAN, NUMBER, STRING, STRING_LIST, FactShape

# PNG signature only; nothing decodes it
BLANK_PNG = b"\x89PNG\r\n\x1a\n"

_EMPTY = {BOOLEAN: False, STRING: "", NUMBER: 0, STRING_LIST: []}


class ScriptedOracle(PageOracle):
    """
    Args:
        responses: shape name -> list of answers, consumed in order. An answer
            is a dict (conformed to the shape) or an exception instance to raise.
        strict: when a shape has no answer left, raise ExtractionError instead
            of answering with empty values (False, "", 0, []).
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Iterable[Any]]] = None,
        strict: bool = False,
        fail_navigation: bool = False,
        fail_evidence: bool = False,
        evidence: bytes = BLANK_PNG,
    ):
        self.responses: Dict[str, List[Any]] = {k: list(v) for k, v in (responses or {}).items()}
        self.strict = strict
        self.fail_navigation = fail_navigation
        self.fail_evidence = fail_evidence
        self.evidence = evidence
        self.calls: List[Tuple[str, str]] = []

    def queue(self, shape_name: str, *answers: Any) -> "ScriptedOracle":
        self.responses.setdefault(shape_name, []).extend(answers)
        return self

    def calls_of(self, kind: str) -> List[str]:
        return [detail for op, detail in self.calls if op == kind]

    @property
    def extracted(self) -> List[str]:
        """Shape names of every extract_facts call, in order."""
        return self.calls_of("extract")

    @property
    def actions(self) -> List[str]:
        return self.calls_of("action")

    async def navigate(self, url: str) -> None:
        self.calls.append(("navigate", url))
        if self.fail_navigation:
            raise NavigationError(f"Failed to load {url}: scripted navigation failure")

    async def extract_facts(self, instruction: str, shape: FactShape) -> Dict[str, Any]:
        self.calls.append(("extract", shape.name))
        pending = self.responses.get(shape.name)
        if pending:
            answer = pending.pop(0)
            if isinstance(answer, BaseException):
                raise answer
            return shape.conform(answer)
        if self.strict:
            raise ExtractionError(f"{shape.name}: no scripted answer")
        return {f.name: list(_EMPTY[f.kind]) if f.kind == STRING_LIST else _EMPTY[f.kind] for f in shape.fields}

    async def perform_action(self, instruction: str) -> None:
        self.calls.append(("action", instruction))

    async def capture_evidence(self) -> bytes:
        self.calls.append(("evidence", ""))
        if self.fail_evidence:
            raise EvidenceError("Screenshot failed: scripted evidence failure")
        return self.evidence
