#!/usr/bin/env python3
"""
Removal workflow - one broker attempt end to end

    start -> page_loaded -> [search -> listing] -> [instruction]
          -> fill -> consent -> submit -> verify -> done

Every mutation goes through PageOracle.perform_action and is followed by a
separate extract_facts read; action results are never trusted. Facts the
oracle cannot produce (ExtractionError) are treated as unknown, never as a
crash. Whatever happens, remove() returns a RemovalResult.
"""
import asyncio
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from .diagnostics import get_logger
from .exceptions import EvidenceError, ExtractionError
from .models import BrokerDefinition, RemovalResult, UserProfile
from .oracle import BOOLEAN, NUMBER, STRING, STRING_LIST, FactShape, PageOracle, shape

logger = get_logger(__name__)

# Brokers known to require searching for a listing before removal,
# used when the oracle does not recognise a search page.
SEARCH_FIRST_BROKERS = (
    "Whitepages", "Spokeo", "BeenVerified", "Intelius", "TruthFinder",
    "MyLife", "Radaris", "US Search", "411.com", "411 Locate",
)

LISTING_NOT_FOUND = "Could not find user listing"
NO_SUCCESS_INDICATORS = "Unable to verify success - no clear success indicators found"

SUBMIT_INSTRUCTION = (
    "Find and click the submit button, or any button that says 'Submit', 'Send', "
    "'Remove', 'Opt Out', 'Delete', 'Continue', 'Next', or similar"
)


class Phase(str, Enum):
    START = "start"
    PAGE_LOADED = "page_loaded"
    SEARCH = "search"
    LISTING = "listing"
    INSTRUCTION = "instruction"
    FILL = "fill"
    CONSENT = "consent"
    SUBMIT = "submit"
    VERIFY = "verify"


SEARCH_CHECK = shape(
    "search_check",
    has_search_form=(BOOLEAN, "Whether there's a search form on the page"),
    has_removal_form=(BOOLEAN, "Whether there's a removal/opt-out form on the page"),
    page_type=(STRING, "Type of page (search, removal form, etc)"),
    needs_search_first=(BOOLEAN, "Whether we need to search for someone before removing them"),
)
LISTING_CHECK = shape(
    "listing_check",
    found_listing=(BOOLEAN, "Whether a matching listing was found"),
    listing_text=(STRING, "Text of the found listing"),
    clicked_listing=(BOOLEAN, "Whether the listing was opened and its details are shown"),
)
RELAXED_LISTING_CHECK = shape(
    "relaxed_listing_check",
    found_possible_listing=(BOOLEAN, "Whether a possible listing was found"),
    clicked_possible_listing=(BOOLEAN, "Whether the possible listing was opened"),
)
FILL_CHECK = shape(
    "fill_check",
    all_fields_filled=(BOOLEAN, "Whether all form fields have been filled"),
    missing_fields=(STRING_LIST, "Any fields that are still empty"),
    filled_fields=(STRING_LIST, "Fields that have been filled"),
)
CHECKBOX_CHECK = shape(
    "checkbox_check",
    found_checkboxes=(BOOLEAN, "Whether any checkboxes were found"),
    checked_checkboxes=(BOOLEAN, "Whether the required checkboxes are checked"),
    checkbox_count=(NUMBER, "Number of checkboxes found and checked"),
    checkbox_types=(STRING_LIST, "Types of checkboxes found (terms, privacy, consent, etc)"),
)
RADIO_CHECK = shape(
    "radio_check",
    found_radio_buttons=(BOOLEAN, "Whether any radio buttons were found"),
    selected_radio_buttons=(BOOLEAN, "Whether the required radio buttons are selected"),
    radio_button_count=(NUMBER, "Number of radio buttons found and selected"),
)
READINESS_CHECK = shape(
    "readiness_check",
    form_ready=(BOOLEAN, "Whether the form is ready for submission"),
    missing_fields=(STRING_LIST, "Any missing required fields"),
    unchecked_checkboxes=(STRING_LIST, "Any unchecked required checkboxes"),
    submit_button_text=(STRING, "Text on the submit button"),
)
READINESS_RECHECK = shape(
    "readiness_recheck",
    form_ready=(BOOLEAN, "Whether the form is now ready for submission"),
    still_missing=(STRING_LIST, "Any still missing fields"),
)
ERROR_CHECK = shape(
    "error_check",
    found_error_indicators=(BOOLEAN, "Whether any error indicators were found"),
    error_messages=(STRING_LIST, "List of error messages found"),
    has_missing_fields=(BOOLEAN, "Whether there are missing field messages"),
    has_unchecked_checkboxes=(BOOLEAN, "Whether there are unchecked checkbox messages"),
)
SUCCESS_CHECK = shape(
    "success_check",
    found_success_text=(BOOLEAN, "Whether any specific success indicators were found"),
    success_text=(STRING, "The specific success text found"),
    page_title=(STRING, "The page title"),
    main_content=(STRING, "Key content from the page"),
)
FORM_CHECK = shape(
    "form_check",
    still_on_form=(BOOLEAN, "Whether we're still on a form page"),
    has_submit_button=(BOOLEAN, "Whether there's still a submit button visible"),
    has_form_fields=(BOOLEAN, "Whether form fields are still visible"),
    page_type=(STRING, "Type of page we're on"),
)


def _listed(items: Sequence[str], label: str = "") -> str:
    """': a, b' (or ': label a, b') when the oracle named anything, else ''."""
    if not items:
        return ""
    prefix = f"{label} " if label else ""
    return f": {prefix}{', '.join(items)}"


def _identity_lines(user: UserProfile) -> str:
    return (
        f"- Name: {user.full_name}\n"
        f"- Address: {user.full_address}\n"
        f"- Phone: {user.phone}"
    )


def _form_lines(user: UserProfile) -> str:
    return (
        f"- First Name: {user.first_name}\n"
        f"- Last Name: {user.last_name}\n"
        f"- Email: {user.email}\n"
        f"- Address: {user.address}\n"
        f"- City: {user.city}\n"
        f"- State: {user.state}\n"
        f"- ZIP: {user.zip}\n"
        f"- Phone: {user.phone}\n"
        f"- Date of Birth: {user.date_of_birth}"
    )


class RemovalWorkflow:
    """
    Drives one broker attempt against a PageOracle.

    Args:
        oracle: page oracle shared by every broker of a run
        evidence_store: where terminal screenshots are written
        analyzer: OutcomeAnalyzer consulted on failures with evidence (optional)
        settle_delay: seconds to wait after filling, before checking fields
        verify_delay: seconds to wait before verifying the outcome
        search_first_brokers: broker names that always go through search
        run_logger: optional Markdown RunLogger
    """

    def __init__(
        self,
        oracle: PageOracle,
        evidence_store,
        analyzer=None,
        settle_delay: float = 1.0,
        verify_delay: float = 2.0,
        search_first_brokers: Sequence[str] = SEARCH_FIRST_BROKERS,
        run_logger=None,
    ):
        self.oracle = oracle
        self.evidence_store = evidence_store
        self.analyzer = analyzer
        self.settle_delay = settle_delay
        self.verify_delay = verify_delay
        self.search_first_brokers = tuple(search_first_brokers)
        self.run_logger = run_logger

    async def remove(self, broker: BrokerDefinition, user: UserProfile) -> RemovalResult:
        """Run the full attempt for one broker. Never raises for ordinary faults."""
        result = RemovalResult(broker=broker)
        if self.run_logger:
            self.run_logger.log_heading(broker.name)
            self.run_logger.log_kv("opt_out_url", broker.opt_out_url)
        try:
            await self._run(broker, user, result)
        except Exception as e:
            logger.error(f"[{broker.name}] {type(e).__name__} during {result.phase}: {e}")
            result.success = False
            result.error = str(e) or type(e).__name__
            if self.run_logger:
                self.run_logger.log_error(f"{result.phase}: {result.error}")
        await self._finish(broker, result)
        return result

    # --- phases ---

    def _enter(self, broker: BrokerDefinition, result: RemovalResult, phase: Phase) -> None:
        result.phase = phase.value
        logger.info(f"[{broker.name}] phase -> {phase.value}")
        if self.run_logger:
            self.run_logger.log_kv("phase", phase.value)

    async def _read_facts(self, broker: BrokerDefinition, instruction: str, fact_shape: FactShape) -> Optional[Dict[str, Any]]:
        try:
            facts = await self.oracle.extract_facts(instruction, fact_shape)
        except ExtractionError as e:
            logger.warning(f"[{broker.name}] {fact_shape.name} unknown: {e}")
            if self.run_logger:
                self.run_logger.log_kv(fact_shape.name, "unknown")
            return None
        if self.run_logger:
            self.run_logger.log_kv(fact_shape.name, facts)
        return facts

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _run(self, broker: BrokerDefinition, user: UserProfile, result: RemovalResult) -> None:
        self._enter(broker, result, Phase.START)
        await self.oracle.navigate(broker.opt_out_url)
        self._enter(broker, result, Phase.PAGE_LOADED)

        if await self._needs_search(broker):
            self._enter(broker, result, Phase.SEARCH)
            await self.oracle.perform_action(
                "Find and fill out the search form with the following information:\n"
                f"{_identity_lines(user)}\n"
                "Look for search fields and fill them appropriately. Then click the search button."
            )

            self._enter(broker, result, Phase.LISTING)
            if not await self._find_listing(broker, user):
                logger.warning(f"[{broker.name}] Could not find listing for {user.full_name}")
                result.error = LISTING_NOT_FOUND
                return

        replay = broker.replay_instructions()
        if replay:
            self._enter(broker, result, Phase.INSTRUCTION)
            logger.info(f"[{broker.name}] Applying instructions: {replay}")
            await self.oracle.perform_action(f"Execute these specific steps exactly: {replay}")

        self._enter(broker, result, Phase.FILL)
        await self._fill(broker, user)

        self._enter(broker, result, Phase.CONSENT)
        await self._consent(broker)

        self._enter(broker, result, Phase.SUBMIT)
        await self._submit(broker, user)

        self._enter(broker, result, Phase.VERIFY)
        success, message = await self._verify(broker)
        result.success = success
        result.details = message

    async def _needs_search(self, broker: BrokerDefinition) -> bool:
        facts = await self._read_facts(
            broker,
            "Check if this page has a search form or if we need to search for someone first before removing them",
            SEARCH_CHECK,
        )
        if facts and facts["needs_search_first"]:
            return True
        return broker.name in self.search_first_brokers

    async def _find_listing(self, broker: BrokerDefinition, user: UserProfile) -> bool:
        await self.oracle.perform_action(
            "Look for a listing in the search results that matches:\n"
            f"{_identity_lines(user)}\n"
            "If you find a matching listing, click on it to view the details."
        )
        facts = await self._read_facts(
            broker,
            "Was a listing matching the following person found, and is its detail page now shown?\n"
            f"{_identity_lines(user)}",
            LISTING_CHECK,
        )
        if facts and facts["found_listing"] and facts["clicked_listing"]:
            logger.info(f"[{broker.name}] Listing found: {facts['listing_text'][:80]}")
            return True

        await self.oracle.perform_action(
            "If no exact match was found, look for any listing that might be the right person and click on it"
        )
        facts = await self._read_facts(
            broker,
            "Was a listing that might be the right person found, and is its detail page now shown?",
            RELAXED_LISTING_CHECK,
        )
        return bool(facts and facts["found_possible_listing"] and facts["clicked_possible_listing"])

    async def _fill(self, broker: BrokerDefinition, user: UserProfile) -> None:
        await self.oracle.perform_action(
            "Fill out the data removal form with the following information:\n"
            f"{_form_lines(user)}\n"
            "Look for form fields that match this information and fill them appropriately. "
            "If there are multiple forms or sections, fill out all relevant ones. "
            "Make sure to fill ALL required fields completely."
        )
        await self._pause(self.settle_delay)

        facts = await self._read_facts(
            broker, "Check if all form fields have been filled with the user's information", FILL_CHECK
        )
        if facts and facts["all_fields_filled"]:
            logger.info(f"[{broker.name}] All form fields filled: {', '.join(facts['filled_fields'])}")
            return
        if facts:
            logger.warning(f"[{broker.name}] Some fields still empty{_listed(facts['missing_fields'])}")
        await self.oracle.perform_action(
            "Fill any remaining empty fields with the user's information:\n" + _form_lines(user)
        )
        await self._pause(self.settle_delay)

    async def _consent(self, broker: BrokerDefinition) -> None:
        await self.oracle.perform_action(
            "Check every checkbox that is required for form submission, including:\n"
            "- Terms of Service acceptance\n"
            "- Privacy Policy acceptance\n"
            "- Consent to remove data\n"
            "- \"I agree\", \"I confirm\" or \"I understand\" checkboxes\n"
            "Do not check newsletter or marketing checkboxes."
        )
        facts = await self._read_facts(
            broker, "Look for checkboxes on the form and report whether the required ones are checked", CHECKBOX_CHECK
        )
        if facts and facts["found_checkboxes"] and facts["checked_checkboxes"]:
            logger.info(
                f"[{broker.name}] Checked {facts['checkbox_count']} checkboxes: {', '.join(facts['checkbox_types'])}"
            )

        await self.oracle.perform_action(
            "Select any radio buttons that need a choice, such as reason for removal or contact preferences"
        )
        facts = await self._read_facts(
            broker, "Look for radio buttons on the form and report whether the required ones are selected", RADIO_CHECK
        )
        if facts and facts["found_radio_buttons"] and facts["selected_radio_buttons"]:
            logger.info(f"[{broker.name}] Selected {facts['radio_button_count']} radio buttons")

    async def _submit(self, broker: BrokerDefinition, user: UserProfile) -> bool:
        """Returns True when a submit click was issued."""
        await self.oracle.perform_action(
            "Fill any empty required fields with the user's information:\n" + _form_lines(user)
        )
        facts = await self._read_facts(
            broker,
            "Check if the form is ready for submission by looking for any missing required fields "
            "or unchecked required checkboxes",
            READINESS_CHECK,
        )

        if facts is not None and not facts["form_ready"]:
            logger.warning(f"[{broker.name}] Form not ready{_listed(facts['missing_fields'], 'missing')}")
            if not facts["unchecked_checkboxes"]:
                logger.error(f"[{broker.name}] Form not ready and no checkboxes to fix, not submitting")
                return False
            logger.warning(f"[{broker.name}] Unchecked checkboxes: {', '.join(facts['unchecked_checkboxes'])}")
            await self.oracle.perform_action("Check any unchecked required checkboxes")
            await self._pause(self.settle_delay)
            recheck = await self._read_facts(
                broker,
                "Check if the form is now ready for submission after checking checkboxes",
                READINESS_RECHECK,
            )
            if recheck is not None and not recheck["form_ready"]:
                logger.error(
                    f"[{broker.name}] Form still not ready after attempting to fix"
                    f"{_listed(recheck['still_missing'])}"
                )
                return False

        instruction = SUBMIT_INSTRUCTION
        if facts and facts["submit_button_text"].strip():
            instruction += f". The submit button appears to read '{facts['submit_button_text'].strip()}'"
        await self.oracle.perform_action(instruction)
        return True

    async def _verify(self, broker: BrokerDefinition):
        """Classify the outcome: explicit errors, then explicit success, then form still shown."""
        await self._pause(self.verify_delay)

        errors = await self._read_facts(
            broker,
            "Look for these specific error indicators that indicate FAILURE:\n"
            "- \"Missing\" followed by field names\n"
            "- \"Please fill out all required fields\"\n"
            "- \"Please check the required checkbox\"\n"
            "- \"Invalid\" or \"Error\" messages\n"
            "- \"Something went wrong\"\n"
            "- \"Please try again\"\n"
            "If you find ANY of these, it's definitely a failure.",
            ERROR_CHECK,
        )
        if errors and errors["found_error_indicators"]:
            return False, f"Form errors detected: {', '.join(errors['error_messages'])}"

        success = await self._read_facts(
            broker,
            "Look for these specific SUCCESS indicators:\n"
            "- \"Thank you\" or \"Thanks\" messages\n"
            "- \"Success\" or \"Successful\"\n"
            "- \"Confirmation\" or \"Confirmed\"\n"
            "- \"Your request has been submitted\"\n"
            "- \"We have received your request\"\n"
            "- \"Your information has been removed\"\n"
            "- \"Opt-out successful\"\n"
            "- \"Email confirmation sent\"\n"
            "Only if you find these specific success messages should you mark as success.",
            SUCCESS_CHECK,
        )
        if success:
            logger.debug(f"[{broker.name}] Page title: {success['page_title']}")
            if success["found_success_text"]:
                return True, f"Success confirmed: {success['success_text']}"

        form = await self._read_facts(
            broker,
            "Check if we're still on a form page with submit buttons or form fields visible",
            FORM_CHECK,
        )
        if form and (form["still_on_form"] or form["has_submit_button"] or form["has_form_fields"]):
            return False, f"Still on form page - submission failed. Page type: {form['page_type']}"

        return False, NO_SUCCESS_INDICATORS

    # --- terminal ---

    async def _finish(self, broker: BrokerDefinition, result: RemovalResult) -> None:
        if result.success:
            logger.info(f"[{broker.name}] Removed: {result.details}")
            if self.run_logger:
                self.run_logger.log_success(result.details or "Removed")
        else:
            logger.warning(f"[{broker.name}] Failed: {result.reason}")
            if self.run_logger and not result.error:
                self.run_logger.log_error(result.reason)

        evidence = None
        try:
            evidence = await self.oracle.capture_evidence()
            path = self.evidence_store.save(broker.name, result.success, evidence)
            result.evidence = str(path)
            logger.info(f"[{broker.name}] Screenshot saved: {path}")
            if self.run_logger:
                self.run_logger.log_image(str(path), f"{broker.name} {'success' if result.success else 'failure'}")
        except EvidenceError as e:
            evidence = None
            logger.error(f"[{broker.name}] Failed to save screenshot: {e}")

        if result.success or evidence is None or self.analyzer is None:
            return
        diagnosis = await self.analyzer.analyze_failure(evidence, broker, result.reason)
        result.diagnosis = diagnosis
        result.broker = self.analyzer.apply_diagnosis(broker, diagnosis)
        if self.run_logger:
            self.run_logger.log_json(diagnosis.to_dict(), "Diagnosis")
