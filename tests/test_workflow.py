"""
Workflow tests against the scripted oracle.

Every scenario checks the order of reads (oracle.extracted) and mutations
(oracle.actions) as well as the final RemovalResult.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from optout_core.analyzer import OutcomeAnalyzer
from optout_core.exceptions import ExtractionError
from optout_core.models import BrokerDefinition, Diagnosis, LearnedInstruction
from optout_core.oracle import ScriptedOracle
from optout_core.workflow import (
    LISTING_NOT_FOUND,
    NO_SUCCESS_INDICATORS,
    SUBMIT_INSTRUCTION,
    RemovalWorkflow,
    _listed,
)

FILLED = {"all_fields_filled": True, "missing_fields": [], "filled_fields": ["name", "email"]}
READY = {"form_ready": True, "missing_fields": [], "unchecked_checkboxes": [], "submit_button_text": ""}
NO_ERRORS = {"found_error_indicators": False, "error_messages": [],
             "has_missing_fields": False, "has_unchecked_checkboxes": False}
THANKS = {"found_success_text": True, "success_text": "Thank you, your request has been submitted",
          "page_title": "Request received", "main_content": ""}


def make_workflow(oracle, evidence_store, **kwargs):
    kwargs.setdefault("settle_delay", 0)
    kwargs.setdefault("verify_delay", 0)
    return RemovalWorkflow(oracle, evidence_store, **kwargs)


def make_analyzer(diagnosis=None):
    analyzer = MagicMock()
    analyzer.analyze_failure = AsyncMock(return_value=diagnosis or Diagnosis.placeholder())
    analyzer.apply_diagnosis = MagicMock(side_effect=lambda broker, d: broker)
    return analyzer


def submitted(oracle):
    return [a for a in oracle.actions if a.startswith(SUBMIT_INSTRUCTION)]


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_confirmed_success(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        oracle.queue("fill_check", FILLED)
        oracle.queue("readiness_check", dict(READY, submit_button_text="Remove My Info"))
        oracle.queue("error_check", NO_ERRORS)
        oracle.queue("success_check", THANKS)
        analyzer = make_analyzer()

        result = await make_workflow(oracle, evidence_store, analyzer=analyzer).remove(broker, user)

        assert result.success is True
        assert result.details == "Success confirmed: Thank you, your request has been submitted"
        assert result.error is None
        assert result.phase == "verify"
        assert oracle.extracted == [
            "search_check", "fill_check", "checkbox_check", "radio_check",
            "readiness_check", "error_check", "success_check",
        ]
        assert len(submitted(oracle)) == 1
        assert "Remove My Info" in submitted(oracle)[0]
        assert oracle.calls[-1] == ("evidence", "")
        assert (evidence_store.directory / "success-PeopleFinders.png").exists()
        assert result.evidence == str(evidence_store.directory / "success-PeopleFinders.png")
        analyzer.analyze_failure.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigates_to_opt_out_url_first(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert oracle.calls[0] == ("navigate", "https://www.peoplefinders.com/opt-out")

    @pytest.mark.asyncio
    async def test_fill_prompt_carries_profile(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue("fill_check", FILLED)
        await make_workflow(oracle, evidence_store).remove(broker, user)
        fill = oracle.actions[0]
        for value in ("Jane", "Doe", "jane.doe@example.com", "62701", "1985-04-12"):
            assert value in fill

    @pytest.mark.asyncio
    async def test_corrective_fill_when_fields_missing(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue(
            "fill_check", {"all_fields_filled": False, "missing_fields": ["zip"], "filled_fields": []}
        )
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert oracle.actions[1].startswith("Fill any remaining empty fields")

    @pytest.mark.asyncio
    async def test_no_corrective_fill_when_complete(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue("fill_check", FILLED)
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert not any(a.startswith("Fill any remaining empty fields") for a in oracle.actions)


class TestSearchAndListing:

    @pytest.mark.asyncio
    async def test_listing_not_found(self, make_broker, user, evidence_store):
        broker = make_broker("Spokeo")
        oracle = ScriptedOracle()
        analyzer = make_analyzer()

        result = await make_workflow(oracle, evidence_store, analyzer=analyzer).remove(broker, user)

        assert result.success is False
        assert result.error == LISTING_NOT_FOUND
        assert result.phase == "listing"
        assert oracle.extracted == ["search_check", "listing_check", "relaxed_listing_check"]
        assert len(oracle.actions) == 3
        assert oracle.actions[0].startswith("Find and fill out the search form")
        assert "Jane Doe" in oracle.actions[0]
        assert not submitted(oracle)
        assert oracle.calls[-1] == ("evidence", "")
        assert (evidence_store.directory / "failure-Spokeo.png").exists()
        analyzer.analyze_failure.assert_awaited_once()
        assert analyzer.analyze_failure.await_args.args[2] == LISTING_NOT_FOUND

    @pytest.mark.asyncio
    async def test_search_requested_by_page(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        oracle.queue("search_check", {"has_search_form": True, "has_removal_form": False,
                                      "page_type": "search", "needs_search_first": True})
        oracle.queue("listing_check", {"found_listing": True, "listing_text": "Jane Doe, 38",
                                       "clicked_listing": True})

        result = await make_workflow(oracle, evidence_store).remove(broker, user)

        assert result.phase == "verify"
        assert oracle.extracted[:3] == ["search_check", "listing_check", "fill_check"]
        assert "relaxed_listing_check" not in oracle.extracted

    @pytest.mark.asyncio
    async def test_relaxed_listing_match(self, make_broker, user, evidence_store):
        oracle = ScriptedOracle().queue(
            "relaxed_listing_check", {"found_possible_listing": True, "clicked_possible_listing": True}
        )
        result = await make_workflow(oracle, evidence_store).remove(make_broker("Radaris"), user)
        assert result.error is None
        assert "fill_check" in oracle.extracted

    @pytest.mark.asyncio
    async def test_listing_found_but_not_opened(self, make_broker, user, evidence_store):
        oracle = ScriptedOracle().queue(
            "listing_check", {"found_listing": True, "listing_text": "Jane Doe", "clicked_listing": False}
        )
        result = await make_workflow(oracle, evidence_store).remove(make_broker("Spokeo"), user)
        assert result.error == LISTING_NOT_FOUND

    @pytest.mark.asyncio
    async def test_custom_search_first_list(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        workflow = make_workflow(oracle, evidence_store, search_first_brokers=["PeopleFinders"])
        result = await workflow.remove(broker, user)
        assert result.error == LISTING_NOT_FOUND


class TestInstructions:

    @pytest.mark.asyncio
    async def test_manual_instructions_replayed_before_fill(self, make_broker, user, evidence_store):
        broker = make_broker(instructions="Click the 'Remove my record' tab")
        oracle = ScriptedOracle()
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert oracle.actions[0] == "Execute these specific steps exactly: Click the 'Remove my record' tab"
        assert oracle.actions[1].startswith("Fill out the data removal form")

    @pytest.mark.asyncio
    async def test_manual_steps_from_catalog_notes_replayed(self, broker, user, evidence_store):
        data = broker.to_dict()
        data["notes"] = "Enter your email address and Click the 'Begin Removal' button"
        oracle = ScriptedOracle()
        await make_workflow(oracle, evidence_store).remove(BrokerDefinition.from_dict(data), user)
        assert oracle.actions[0] == (
            "Execute these specific steps exactly: "
            "Enter your email address and Click the 'Begin Removal' button"
        )

    @pytest.mark.asyncio
    async def test_latest_learned_instruction_wins(self, make_broker, user, evidence_store):
        broker = make_broker(
            instructions="manual steps",
            learned=(
                LearnedInstruction(text="old fix", confidence=7),
                LearnedInstruction(text="Accept the privacy checkbox", confidence=9),
            ),
        )
        oracle = ScriptedOracle()
        result = await make_workflow(oracle, evidence_store).remove(broker, user)
        assert oracle.actions[0] == "Execute these specific steps exactly: Accept the privacy checkbox"
        assert not any("manual steps" in a for a in oracle.actions)
        assert result.phase == "verify"

    @pytest.mark.asyncio
    async def test_no_instruction_phase_without_instructions(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert not any(a.startswith("Execute these specific steps") for a in oracle.actions)


class TestSubmit:

    @pytest.mark.asyncio
    async def test_not_ready_without_checkboxes_skips_submit(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue(
            "readiness_check",
            {"form_ready": False, "missing_fields": ["dob"], "unchecked_checkboxes": [], "submit_button_text": ""},
        )
        result = await make_workflow(oracle, evidence_store).remove(broker, user)
        assert not submitted(oracle)
        assert "readiness_recheck" not in oracle.extracted
        # Verification still runs and decides the outcome
        assert result.phase == "verify"
        assert result.details == NO_SUCCESS_INDICATORS

    @pytest.mark.asyncio
    async def test_unchecked_boxes_fixed_then_submitted(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        oracle.queue("readiness_check", {"form_ready": False, "missing_fields": [],
                                         "unchecked_checkboxes": ["terms"], "submit_button_text": "Send"})
        oracle.queue("readiness_recheck", {"form_ready": True, "still_missing": []})
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert "Check any unchecked required checkboxes" in oracle.actions
        assert len(submitted(oracle)) == 1

    @pytest.mark.asyncio
    async def test_recheck_still_not_ready(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        oracle.queue("readiness_check", {"form_ready": False, "missing_fields": [],
                                         "unchecked_checkboxes": ["terms"], "submit_button_text": ""})
        oracle.queue("readiness_recheck", {"form_ready": False, "still_missing": ["terms"]})
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert not submitted(oracle)

    @pytest.mark.asyncio
    async def test_ready_form_submitted_once(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue("readiness_check", READY)
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert submitted(oracle) == [SUBMIT_INSTRUCTION]


class TestVerify:

    @pytest.mark.asyncio
    async def test_errors_beat_success(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        oracle.queue("error_check", {"found_error_indicators": True,
                                     "error_messages": ["Missing email", "Please try again"],
                                     "has_missing_fields": True, "has_unchecked_checkboxes": False})
        oracle.queue("success_check", THANKS)

        result = await make_workflow(oracle, evidence_store).remove(broker, user)

        assert result.success is False
        assert result.details == "Form errors detected: Missing email, Please try again"
        assert result.reason == result.details
        assert "success_check" not in oracle.extracted

    @pytest.mark.asyncio
    async def test_still_on_form(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue(
            "form_check",
            {"still_on_form": False, "has_submit_button": True, "has_form_fields": False, "page_type": "form"},
        )
        result = await make_workflow(oracle, evidence_store).remove(broker, user)
        assert result.success is False
        assert result.details == "Still on form page - submission failed. Page type: form"

    @pytest.mark.asyncio
    async def test_no_indicators(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        result = await make_workflow(oracle, evidence_store).remove(broker, user)
        assert result.success is False
        assert result.details == NO_SUCCESS_INDICATORS
        assert oracle.extracted[-3:] == ["error_check", "success_check", "form_check"]
        assert (evidence_store.directory / "failure-PeopleFinders.png").exists()

    @pytest.mark.asyncio
    async def test_unknown_error_tier_falls_through_to_success(self, broker, user, evidence_store):
        oracle = ScriptedOracle()
        oracle.queue("error_check", ExtractionError("error_check: oracle unavailable"))
        oracle.queue("success_check", THANKS)
        result = await make_workflow(oracle, evidence_store).remove(broker, user)
        assert result.success is True


class TestUnknownFacts:

    @pytest.mark.asyncio
    async def test_all_facts_unknown(self, broker, user, evidence_store):
        oracle = ScriptedOracle(strict=True)
        result = await make_workflow(oracle, evidence_store).remove(broker, user)

        assert result.success is False
        assert result.error is None
        assert result.details == NO_SUCCESS_INDICATORS
        # Unknown fill facts trigger the corrective fill; unknown readiness still submits
        assert oracle.actions[1].startswith("Fill any remaining empty fields")
        assert submitted(oracle) == [SUBMIT_INSTRUCTION]

    @pytest.mark.asyncio
    async def test_unknown_search_facts_use_allow_list(self, make_broker, user, evidence_store):
        oracle = ScriptedOracle(strict=True)
        result = await make_workflow(oracle, evidence_store).remove(make_broker("Whitepages"), user)
        assert result.error == LISTING_NOT_FOUND


class TestFailures:

    @pytest.mark.asyncio
    async def test_navigation_failure(self, broker, user, evidence_store):
        oracle = ScriptedOracle(fail_navigation=True)
        analyzer = make_analyzer()

        result = await make_workflow(oracle, evidence_store, analyzer=analyzer).remove(broker, user)

        assert result.success is False
        assert result.phase == "start"
        assert result.error.startswith("Failed to load https://www.peoplefinders.com/opt-out")
        assert oracle.extracted == []
        assert oracle.calls[-1] == ("evidence", "")
        analyzer.analyze_failure.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_phase(self, broker, user, evidence_store):
        oracle = ScriptedOracle().queue("fill_check", RuntimeError("Target closed"))
        result = await make_workflow(oracle, evidence_store).remove(broker, user)
        assert result.success is False
        assert result.phase == "fill"
        assert result.error == "Target closed"

    @pytest.mark.asyncio
    async def test_evidence_failure_skips_analysis(self, make_broker, user, evidence_store):
        oracle = ScriptedOracle(fail_evidence=True)
        analyzer = make_analyzer()
        result = await make_workflow(oracle, evidence_store, analyzer=analyzer).remove(make_broker("Spokeo"), user)
        assert result.error == LISTING_NOT_FOUND
        assert result.evidence is None
        assert result.diagnosis is None
        analyzer.analyze_failure.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_evidence_write_failure(self, broker, user, tmp_path):
        from optout_core.stores import EvidenceStore

        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        analyzer = make_analyzer()
        workflow = make_workflow(ScriptedOracle(), EvidenceStore(blocker), analyzer=analyzer)
        result = await workflow.remove(broker, user)
        assert result.evidence is None
        analyzer.analyze_failure.assert_not_awaited()


class TestLearning:

    @pytest.mark.asyncio
    async def test_confident_diagnosis_is_learned_and_persisted(self, broker, user, evidence_store, catalog):
        llm = MagicMock()
        llm.ainvoke_with_image = AsyncMock(return_value={"text": (
            "PROBLEM: The consent checkbox was not checked\n"
            "FIX: Check the consent box before submitting\n"
            "STEPS: Check consent, Click submit\n"
            "INSTRUCTIONS: Check the 'I consent' checkbox, then click Submit\n"
            "CONFIDENCE: 8"
        )})
        analyzer = OutcomeAnalyzer(llm, catalog=catalog, threshold=6)

        result = await make_workflow(ScriptedOracle(), evidence_store, analyzer=analyzer).remove(broker, user)

        assert result.diagnosis.confidence == 8
        assert result.diagnosis.next_steps == ["Check consent", "Click submit"]
        assert result.broker.replay_instructions() == "Check the 'I consent' checkbox, then click Submit"
        stored = {b.name: b for b in catalog.load()}["PeopleFinders"]
        assert stored.replay_instructions() == "Check the 'I consent' checkbox, then click Submit"

        oracle = ScriptedOracle()
        await make_workflow(oracle, evidence_store).remove(stored, user)
        assert oracle.actions[0] == (
            "Execute these specific steps exactly: Check the 'I consent' checkbox, then click Submit"
        )

    @pytest.mark.asyncio
    async def test_low_confidence_not_learned(self, broker, user, evidence_store, catalog, catalog_path):
        before = json.loads(catalog_path.read_text())
        llm = MagicMock()
        llm.ainvoke_with_image = AsyncMock(return_value={"text": "PROBLEM: unclear\nINSTRUCTIONS: try again\nCONFIDENCE: 3"})
        analyzer = OutcomeAnalyzer(llm, catalog=catalog, threshold=6)

        result = await make_workflow(ScriptedOracle(), evidence_store, analyzer=analyzer).remove(broker, user)

        assert result.diagnosis.confidence == 3
        assert json.loads(catalog_path.read_text()) == before


class TestWarnings:

    @pytest.fixture
    def log(self, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr("optout_core.workflow.logger", log)
        return log

    @staticmethod
    def warned(log):
        return [c.args[0] for c in log.warning.call_args_list]

    def test_listed_formats_only_named_items(self):
        assert _listed([]) == ""
        assert _listed(["zip", "dob"]) == ": zip, dob"
        assert _listed(["dob"], "missing") == ": missing dob"

    @pytest.mark.asyncio
    async def test_unnamed_empty_fields(self, broker, user, evidence_store, log):
        oracle = ScriptedOracle().queue(
            "fill_check", {"all_fields_filled": False, "missing_fields": [], "filled_fields": []}
        )
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert "[PeopleFinders] Some fields still empty" in self.warned(log)

    @pytest.mark.asyncio
    async def test_named_empty_fields(self, broker, user, evidence_store, log):
        oracle = ScriptedOracle().queue(
            "fill_check", {"all_fields_filled": False, "missing_fields": ["zip"], "filled_fields": []}
        )
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert "[PeopleFinders] Some fields still empty: zip" in self.warned(log)

    @pytest.mark.asyncio
    async def test_form_not_ready_without_names(self, broker, user, evidence_store, log):
        oracle = ScriptedOracle()
        oracle.queue("readiness_check", {"form_ready": False, "missing_fields": [],
                                         "unchecked_checkboxes": ["terms"], "submit_button_text": ""})
        oracle.queue("readiness_recheck", {"form_ready": False, "still_missing": []})
        await make_workflow(oracle, evidence_store).remove(broker, user)
        assert "[PeopleFinders] Form not ready" in self.warned(log)
        log.error.assert_any_call("[PeopleFinders] Form still not ready after attempting to fix")


class TestRunLogger:

    @pytest.mark.asyncio
    async def test_phases_logged(self, broker, user, evidence_store):
        run_logger = MagicMock()
        await make_workflow(ScriptedOracle(), evidence_store, run_logger=run_logger).remove(broker, user)
        run_logger.log_heading.assert_called_once_with("PeopleFinders")
        phases = [c.args[1] for c in run_logger.log_kv.call_args_list if c.args[0] == "phase"]
        assert phases == ["start", "page_loaded", "fill", "consent", "submit", "verify"]
        run_logger.log_image.assert_called_once()
