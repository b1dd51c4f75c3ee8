#!/usr/bin/env python3
"""
Outcome Analyzer

Turns a failed attempt into a Diagnosis by showing the evidence screenshot to
a vision model and reading labelled lines back out of its free-form answer.
A confident diagnosis becomes a LearnedInstruction on the broker, which the
workflow replays on the next run.

Also offers a text-only structural reading of an opt-out page
(PageStructuralAnalysis). The workflow does not consume it.
"""
import re
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .diagnostics import get_logger
from .exceptions import AnalysisError, OptOutError
from .llm import invoke_text
from .models import (
    BrokerDefinition,
    Diagnosis,
    LearnedInstruction,
    PageStructuralAnalysis,
    UserProfile,
)

logger = get_logger(__name__)

_NUMBERED_RE = re.compile(r"^\s*(?:\d+[.)]|[-•])\s*(.+)$")
_INT_RE = re.compile(r"-?\d+")

FAILURE_PROMPT = """
You are helping someone remove their data from a data broker website, but they're stuck and can't figure out what went wrong. Analyze this screenshot to identify the EXACT steps they're missing.

BROKER: {name}
URL: {url}
ERROR: {error}

Focus ONLY on these critical issues:
1. FORM VALIDATION ERRORS: Missing required fields, unchecked checkboxes, invalid input formats
2. MISSING STEPS: Buttons not clicked, forms not submitted, terms not accepted
3. CAPTCHA/BOT DETECTION: Any anti-bot measures that need to be handled
4. MISSING URLS: If they need to provide a specific URL but used a generic one
5. PAGE NAVIGATION: Wrong page, need to search first, need to find listing

DO NOT focus on:
- Minor typos in email addresses
- Cosmetic issues
- General page layout problems

Provide SPECIFIC, ACTIONABLE steps like:
"Click the 'I agree to terms' checkbox before continuing"
"Enter your full address in the address field"
"Search for your name first, then click on your listing"

Answer in this format:
PROBLEM: <what went wrong>
FIX: <how to fix it>
STEPS: <comma separated steps>
INSTRUCTIONS: <one instruction a browser agent can execute on the next attempt>
CONFIDENCE: <1-10>
"""

PAGE_PROMPT = """
You are analyzing a data broker removal page to determine the exact steps needed to complete the removal process.

BROKER: {broker_name}
PAGE TITLE: {page_title}
PAGE TYPE: {page_type}

USER INFORMATION:
- Name: {user_name}
- Email: {user_email}
- Address: {user_address}
- Phone: {user_phone}
- Date of Birth: {user_dob}

PAGE CONTENT:
{all_text}

FORM FIELDS FOUND:
{form_fields}

BUTTONS FOUND:
{buttons}

INSTRUCTIONS FOUND:
{instructions}

Based on this page content, determine the exact steps needed to complete the data removal process. Be very specific and actionable.

Return your analysis in this exact format:
STEPS:
1. [specific step]
2. [specific step]
3. [specific step]

PAGE_TYPE: [search/form/confirmation/etc]
FORM_FIELDS: [list of fields that need to be filled]
REQUIRED_ACTIONS: [list of required actions like checkboxes, terms acceptance, etc]
CONFIDENCE: [1-10]
"""


def _clamp(value: int) -> int:
    return max(1, min(10, value))


def _split_list(text: str) -> List[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


def _label(line: str):
    """Split 'Label: value' into (lowercased label, value); (None, line) otherwise."""
    cleaned = line.replace("*", "").strip().lstrip("#-• ").strip()
    if ":" not in cleaned:
        return None, cleaned
    label, value = cleaned.split(":", 1)
    label = label.strip()
    # "1. Click Next: ..." is a numbered step, not a label
    if len(label) > 40 or label[:1].isdigit():
        return None, cleaned
    return label.strip().lower(), value.strip()


def parse_failure_response(response: str) -> Diagnosis:
    """
    Read PROBLEM/FIX/STEPS/INSTRUCTIONS/CONFIDENCE lines out of a model answer.

    Labels are case-insensitive and may be wrapped in markdown bold. Steps are
    either comma separated on the label line or numbered lines below it.
    """
    problem = fix = special = ""
    steps: List[str] = []
    confidence: Optional[int] = None
    found = False
    in_steps = False

    for line in (response or "").splitlines():
        label, value = _label(line)
        kind = None
        if label is not None:
            if "confidence" in label:
                kind = "confidence"
            elif "instruction" in label:
                kind = "instructions"
            elif "step" in label or label == "next":
                kind = "steps"
            elif "problem" in label or "issue" in label:
                kind = "problem"
            elif "fix" in label or "solution" in label:
                kind = "fix"

        if kind is None:
            if in_steps:
                m = _NUMBERED_RE.match(line.replace("*", ""))
                if m and m.group(1).strip():
                    steps.append(m.group(1).strip())
            continue

        found = True
        in_steps = False
        if kind == "confidence":
            m = _INT_RE.search(value)
            if m:
                confidence = _clamp(int(m.group()))
        elif kind == "instructions":
            special = value
        elif kind == "steps":
            steps = _split_list(value)
            in_steps = not steps
        elif kind == "problem":
            problem = value
        elif kind == "fix":
            fix = value

    if not found:
        return Diagnosis.placeholder("Failed to parse analysis")

    return Diagnosis(
        problem=problem or (response[:200] + "..."),
        suggested_fix=fix or "Manual review required",
        next_steps=steps,
        special_instructions=special or fix,
        confidence=confidence if confidence is not None else 5,
    )


def parse_page_analysis_response(response: str) -> PageStructuralAnalysis:
    steps: List[str] = []
    page_type = "unknown"
    form_fields: List[str] = []
    required_actions: List[str] = []
    confidence: Optional[int] = None
    found = False
    in_steps = False

    for line in (response or "").splitlines():
        label, value = _label(line)
        if label == "steps":
            found, in_steps = True, True
            steps.extend(_split_list(value))
            continue
        if label in ("page_type", "form_fields", "required_actions", "confidence"):
            found, in_steps = True, False
            if label == "page_type":
                page_type = value.strip("[] ") or "unknown"
            elif label == "form_fields":
                form_fields = _split_list(value.strip("[]"))
            elif label == "required_actions":
                required_actions = _split_list(value.strip("[]"))
            else:
                m = _INT_RE.search(value)
                if m:
                    confidence = _clamp(int(m.group()))
            continue
        if in_steps:
            m = _NUMBERED_RE.match(line.replace("*", ""))
            if m and m.group(1).strip():
                steps.append(m.group(1).strip())

    if not found:
        return PageStructuralAnalysis.placeholder()
    return PageStructuralAnalysis(
        steps=steps,
        page_type=page_type,
        form_fields=form_fields,
        required_actions=required_actions,
        confidence=confidence if confidence is not None else 5,
    )


class OutcomeAnalyzer:
    """
    Args:
        llm: client with ainvoke()/ainvoke_with_image()
        catalog: BrokerCatalog that learned instructions are written back to
        threshold: minimum confidence for a diagnosis to be learned
    """

    def __init__(self, llm, catalog=None, threshold: int = 6):
        self.llm = llm
        self.catalog = catalog
        self.threshold = threshold

    async def analyze_failure(
        self,
        evidence: Union[bytes, str, Path],
        broker: BrokerDefinition,
        error_text: str,
    ) -> Diagnosis:
        """Diagnose a failed attempt. Never raises."""
        try:
            image = evidence if isinstance(evidence, bytes) else Path(evidence).read_bytes()
            prompt = FAILURE_PROMPT.format(
                name=broker.name,
                url=broker.opt_out_url,
                error=error_text or "Unknown error",
            )
            logger.info(f"Analyzing failure screenshot for {broker.name}")
            response = await invoke_text(self.llm, prompt, image)
            if not response.strip():
                raise AnalysisError("Empty analysis response")
            diagnosis = parse_failure_response(response)
        except Exception as e:
            logger.error(f"Failed to analyze screenshot for {broker.name}: {e}")
            return Diagnosis.placeholder("Analysis failed")
        logger.info(f"Problem: {diagnosis.problem}")
        logger.info(f"Fix: {diagnosis.suggested_fix} (confidence {diagnosis.confidence}/10)")
        return diagnosis

    async def analyze_page(
        self,
        broker_name: str,
        page_title: str,
        all_text: str,
        form_fields: Sequence[str],
        buttons: Sequence[str],
        instructions: Sequence[str],
        page_type: str,
        user: UserProfile,
    ) -> PageStructuralAnalysis:
        """Structural reading of a removal page. Text only, never raises."""
        try:
            prompt = PAGE_PROMPT.format(
                broker_name=broker_name,
                page_title=page_title,
                page_type=page_type,
                user_name=user.full_name,
                user_email=user.email,
                user_address=user.full_address,
                user_phone=user.phone,
                user_dob=user.date_of_birth,
                all_text=all_text,
                form_fields="\n".join(form_fields),
                buttons="\n".join(buttons),
                instructions="\n".join(instructions),
            )
            response = await invoke_text(self.llm, prompt)
            analysis = parse_page_analysis_response(response)
        except Exception as e:
            logger.error(f"Failed to analyze page content for {broker_name}: {e}")
            return PageStructuralAnalysis.placeholder()
        logger.info(f"Page analysis for {broker_name}: {len(analysis.steps)} steps, type {analysis.page_type}")
        return analysis

    def apply_diagnosis(self, broker: BrokerDefinition, diagnosis: Diagnosis) -> BrokerDefinition:
        """
        Learn a confident diagnosis: append it to the broker and persist the
        catalog entry. Returns the broker unchanged below the threshold.
        """
        text = (diagnosis.special_instructions or "").strip()
        if diagnosis.confidence < self.threshold or not text:
            logger.debug(f"Not learning diagnosis for {broker.name} (confidence {diagnosis.confidence})")
            return broker

        updated = broker.with_learned(LearnedInstruction(
            text=text,
            confidence=diagnosis.confidence,
            problem=diagnosis.problem,
        ))
        if self.catalog is not None:
            try:
                self.catalog.update(updated)
            except (OptOutError, OSError) as e:
                logger.error(f"Failed to save updated broker {broker.name}: {e}")
        logger.info(f"Updated {broker.name} with learned instructions ({diagnosis.confidence}/10)")
        return updated
