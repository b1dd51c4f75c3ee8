"""Tests for session orchestration and incremental persistence."""

import json
from unittest.mock import MagicMock

import pytest

from optout_core.models import RemovalResult
from optout_core.session import SessionOrchestrator, run_session, summarize
from optout_core.workflow import LISTING_NOT_FOUND


class StubWorkflow:
    """Returns canned outcomes per broker; raises what it is told to."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.seen = []

    async def remove(self, broker, user):
        self.seen.append(broker.name)
        outcome = self.outcomes[broker.name]
        if isinstance(outcome, BaseException):
            raise outcome
        return RemovalResult(broker=broker, success=outcome, details="Success confirmed: Thanks" if outcome else None,
                             error=None if outcome else "Form errors detected: Missing zip")


@pytest.fixture
def brokers(make_broker):
    return [make_broker("PeopleFinders"), make_broker("Spokeo"), make_broker("Radaris")]


class TestSessionOrchestrator:

    @pytest.mark.asyncio
    async def test_results_in_catalog_order(self, brokers, user, session_store):
        workflow = StubWorkflow({"PeopleFinders": True, "Spokeo": False, "Radaris": True})
        seen = []

        session = await SessionOrchestrator(workflow, session_store, on_result=seen.append).run(user, brokers)

        assert workflow.seen == ["PeopleFinders", "Spokeo", "Radaris"]
        assert [r.broker.name for r in session.results] == ["PeopleFinders", "Spokeo", "Radaris"]
        assert [r.broker.name for r in seen] == ["PeopleFinders", "Spokeo", "Radaris"]
        assert session.end_time is not None

        saved = session_store.load()
        assert [r["broker"]["name"] for r in saved["results"]] == ["PeopleFinders", "Spokeo", "Radaris"]
        assert saved["user"]["firstName"] == "Jane"
        assert "endTime" in saved

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failed_result(self, brokers, user, session_store):
        workflow = StubWorkflow({"PeopleFinders": True, "Spokeo": RuntimeError("browser died"), "Radaris": True})
        session = await SessionOrchestrator(workflow, session_store).run(user, brokers)
        assert [r.success for r in session.results] == [True, False, True]
        assert session.results[1].error == "browser died"

    @pytest.mark.asyncio
    async def test_unexpected_error_logged_with_context(self, brokers, user, session_store, monkeypatch):
        log = MagicMock()
        monkeypatch.setattr("optout_core.session.logger", log)
        workflow = StubWorkflow({"PeopleFinders": True, "Spokeo": RuntimeError("Target closed"), "Radaris": True})

        await SessionOrchestrator(workflow, session_store).run(user, brokers)

        message = log.error.call_args.args[0]
        assert message.startswith("📍 Context: Spokeo")
        assert "❌ The browser was closed during the attempt" in message
        assert "🔧 Technical: Target closed" in message

    @pytest.mark.asyncio
    async def test_interrupted_run_keeps_completed_results(self, brokers, user, session_store):
        workflow = StubWorkflow({"PeopleFinders": True, "Spokeo": False, "Radaris": KeyboardInterrupt()})

        with pytest.raises(KeyboardInterrupt):
            await SessionOrchestrator(workflow, session_store).run(user, brokers)

        saved = json.loads(session_store.path.read_text(encoding="utf-8"))
        assert [r["broker"]["name"] for r in saved["results"]] == ["PeopleFinders", "Spokeo"]
        assert "endTime" not in saved

    @pytest.mark.asyncio
    async def test_empty_broker_list(self, user, session_store):
        session = await SessionOrchestrator(StubWorkflow({}), session_store).run(user, [])
        assert session.results == []
        assert session_store.load()["results"] == []

    @pytest.mark.asyncio
    async def test_run_logger_summary(self, brokers, user, session_store):
        run_logger = MagicMock()
        workflow = StubWorkflow({"PeopleFinders": True, "Spokeo": False, "Radaris": False})
        await SessionOrchestrator(workflow, session_store, run_logger=run_logger).run(user, brokers)
        kwargs = run_logger.finalize.call_args.kwargs
        assert kwargs["successful"] == 1
        assert kwargs["failed"] == 2
        assert kwargs["rows"][1] == ["Spokeo", "❌", "Form errors detected: Missing zip"]


class TestSummarize:

    @pytest.mark.asyncio
    async def test_summary(self, brokers, user, session_store):
        workflow = StubWorkflow({"PeopleFinders": True, "Spokeo": False, "Radaris": True})
        session = await SessionOrchestrator(workflow, session_store).run(user, brokers)

        summary = summarize(session)

        assert summary["total"] == 3
        assert summary["successful"] == 2
        assert summary["failed"] == 1
        assert summary["duration_s"] >= 0
        assert summary["removed_from"] == ["PeopleFinders", "Radaris"]
        failure = summary["failures"][0]
        assert failure["broker"] == "Spokeo"
        assert failure["reason"] == "Form errors detected: Missing zip"
        assert failure["category"] == "form"


class TestRunSession:

    @pytest.mark.asyncio
    async def test_dry_run(self, tmp_path, brokers, user):
        from optout_core.config import Config

        cfg = Config(
            brokers_file=tmp_path / "brokers.json",
            session_file=tmp_path / "session.json",
            screenshot_dir=tmp_path / "shots",
        )
        session = await run_session(user, brokers, cfg, dry_run=True)

        assert len(session.results) == 3
        assert not session.successful
        by_name = {r.broker.name: r for r in session.results}
        assert by_name["Spokeo"].error == LISTING_NOT_FOUND
        assert by_name["PeopleFinders"].details.startswith("Unable to verify success")
        assert (tmp_path / "shots" / "failure-Radaris.png").exists()
        assert json.loads((tmp_path / "session.json").read_text())["endTime"]
