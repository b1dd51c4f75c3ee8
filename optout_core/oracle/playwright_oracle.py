#!/usr/bin/env python3
"""
Network-backed page oracle: a live Playwright page read and driven by a
vision-capable LLM.

extract_facts sends the page context (and optionally a screenshot) with the
caller's instruction and the JSON shape to answer in. perform_action asks the
LLM for a short plan of atomic steps against indexed interactive elements and
executes them one by one.
"""
import json
import re
from typing import Any, Dict, List, Optional

from ..diagnostics import get_logger
from ..exceptions import EvidenceError, ExtractionError, NavigationError
from ..llm import invoke_text
from .actions import execute_action
from .base import PageOracle
from .page_context import extract_page_context, snapshot_interactive
from .shape import FactShape

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_json_response(response: str) -> Optional[Any]:
    """Parse JSON from LLM response."""
    if not response:
        return None
    candidates = [m.group(1) for m in _FENCE_RE.finditer(response)]
    candidates.append(response.strip())
    start, end = response.find("{"), response.rfind("}")
    if start != -1 and end > start:
        candidates.append(response[start:end + 1])
    simple = re.search(r'\{[^{}]*\}', response, re.DOTALL)
    if simple:
        candidates.append(simple.group())

    for candidate in candidates:
        try:
            return json.loads(candidate.strip())
        except (json.JSONDecodeError, ValueError):
            continue
    return None


def build_extract_prompt(instruction: str, shape: FactShape, context: Dict[str, Any]) -> str:
    return f"""You are reading a web page for an automated privacy opt-out assistant.

Page context:
{json.dumps(context, ensure_ascii=False, indent=2)}

Question:
{instruction}

Answer ONLY with a JSON object with exactly these keys:
{json.dumps(shape.to_schema(), indent=2)}

Use true/false for booleans, numbers for numbers, [] for an empty list and "" for unknown text.
JSON:"""


def build_action_prompt(instruction: str, elements: List[Dict[str, Any]], context: Dict[str, Any]) -> str:
    page = {k: context.get(k) for k in ("title", "url", "headings")}
    return f"""You are operating a web page for an automated privacy opt-out assistant.

Page:
{json.dumps(page, ensure_ascii=False)}

Interactive elements (address them by idx):
{json.dumps(elements, ensure_ascii=False, indent=1)}

Task:
{instruction}

Plan the steps needed to carry out the task on THIS page. Allowed step types:
- {{"type": "fill", "idx": N, "value": "text"}}
- {{"type": "click", "idx": N}}
- {{"type": "check", "idx": N}}
- {{"type": "select", "idx": N, "value": "option label"}}

Do not click links that leave the page unless the task asks for it.
Answer ONLY with JSON: {{"actions": [ ... ]}}
JSON:"""


class PlaywrightOracle(PageOracle):
    def __init__(
        self,
        page,
        llm,
        navigation_timeout_ms: int = 30000,
        settle_timeout_ms: int = 15000,
        action_timeout_ms: int = 8000,
        vision: bool = True,
        text_chars: int = 6000,
        max_actions: int = 25,
    ):
        self.page = page
        self.llm = llm
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_timeout_ms = settle_timeout_ms
        self.action_timeout_ms = action_timeout_ms
        self.vision = vision
        self.text_chars = text_chars
        self.max_actions = max_actions

    @classmethod
    def from_config(cls, page, llm, config) -> "PlaywrightOracle":
        return cls(
            page,
            llm,
            navigation_timeout_ms=config.navigation_timeout_ms,
            settle_timeout_ms=config.settle_timeout_ms,
            action_timeout_ms=config.action_timeout_ms,
            vision=config.oracle_vision,
            text_chars=config.oracle_text_chars,
        )

    async def _settle(self) -> None:
        try:
            await self.page.wait_for_load_state("networkidle", timeout=self.settle_timeout_ms)
        except Exception as e:
            logger.debug(f"Network did not settle: {e}")

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except Exception as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e
        await self._settle()

    async def _screenshot(self) -> Optional[bytes]:
        if not self.vision:
            return None
        try:
            return await self.page.screenshot(full_page=False)
        except Exception as e:
            logger.debug(f"Screenshot for oracle prompt failed: {e}")
            return None

    async def extract_facts(self, instruction: str, shape: FactShape) -> Dict[str, Any]:
        try:
            context = await extract_page_context(self.page, text_chars=self.text_chars)
            image = await self._screenshot()
            response = await invoke_text(self.llm, build_extract_prompt(instruction, shape, context), image)
        except Exception as e:
            raise ExtractionError(f"{shape.name}: oracle unavailable: {e}") from e
        data = parse_json_response(response)
        if data is None:
            raise ExtractionError(f"{shape.name}: no JSON in oracle response: {response[:200]!r}")
        facts = shape.conform(data)
        logger.debug(f"{shape.name} -> {facts}")
        return facts

    async def perform_action(self, instruction: str) -> None:
        try:
            elements = await snapshot_interactive(self.page)
            context = await extract_page_context(self.page, text_chars=0)
            response = await invoke_text(self.llm, build_action_prompt(instruction, elements, context))
            plan = parse_json_response(response)
            actions = plan.get("actions") if isinstance(plan, dict) else plan
            if not isinstance(actions, list):
                logger.warning(f"No action plan for: {instruction[:80]}")
                return
            done = 0
            for action in actions[: self.max_actions]:
                if not isinstance(action, dict):
                    continue
                result = await execute_action(self.page, action, self.action_timeout_ms)
                if result.get("success"):
                    done += 1
                else:
                    logger.warning(f"Step {action} failed: {result.get('error')}")
            logger.debug(f"Executed {done}/{len(actions)} steps for: {instruction[:80]}")
        except Exception as e:
            logger.warning(f"Action failed ({instruction[:80]}): {e}")
        finally:
            await self._settle()

    async def capture_evidence(self) -> bytes:
        try:
            return await self.page.screenshot(full_page=True)
        except Exception as e:
            raise EvidenceError(f"Screenshot failed: {e}") from e
