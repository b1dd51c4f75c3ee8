#!/usr/bin/env python3
"""
Session orchestration: brokers are processed strictly one after another and
the session file is rewritten after each one, so an interrupted run loses at
most the broker in flight.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from .analyzer import OutcomeAnalyzer
from .diagnostics import get_logger
from .error_handler import create_error_response, format_error_for_logging
from .llm_config import LLMPresets
from .llm_factory import create_llm_client
from .models import BrokerDefinition, RemovalResult, RemovalSession, UserProfile
from .oracle import PlaywrightOracle, ScriptedOracle, open_browser
from .stores import BrokerCatalog, EvidenceStore, SessionStore
from .workflow import RemovalWorkflow

logger = get_logger(__name__)


class SessionOrchestrator:
    def __init__(self, workflow: RemovalWorkflow, session_store: SessionStore, run_logger=None,
                 on_result: Optional[Callable[[RemovalResult], None]] = None):
        self.workflow = workflow
        self.session_store = session_store
        self.run_logger = run_logger
        self.on_result = on_result

    async def run(self, user: UserProfile, brokers: Sequence[BrokerDefinition]) -> RemovalSession:
        session = RemovalSession(user=user)
        self.session_store.save(session)

        total = len(brokers)
        for i, broker in enumerate(brokers, 1):
            logger.info(f"[{i}/{total}] Processing {broker.name}")
            try:
                result = await self.workflow.remove(broker, user)
            except Exception as e:
                logger.error(format_error_for_logging(e, context=broker.name))
                result = RemovalResult(broker=broker, error=str(e) or type(e).__name__)
            session.results.append(result)
            self.session_store.save(session)
            if self.on_result:
                self.on_result(result)

        session.end_time = datetime.now()
        self.session_store.save(session)

        summary = summarize(session)
        logger.info(
            f"Session finished: {summary['successful']} succeeded, {summary['failed']} failed "
            f"in {summary['duration_s']:.1f}s"
        )
        if self.run_logger:
            self.run_logger.finalize(
                successful=summary["successful"],
                failed=summary["failed"],
                duration_s=summary["duration_s"],
                rows=[[r.broker.name, "✅" if r.success else "❌", "" if r.success else r.reason]
                      for r in session.results],
            )
        return session


def summarize(session: RemovalSession) -> Dict[str, Any]:
    """Totals, duration and per-broker failure reasons of a session."""
    end = session.end_time or datetime.now()
    return {
        "total": len(session.results),
        "successful": len(session.successful),
        "failed": len(session.failed),
        "duration_s": max(0.0, (end - session.start_time).total_seconds()),
        "removed_from": [r.broker.name for r in session.successful],
        "failures": [
            {"broker": r.broker.name, "reason": r.reason, **create_error_response(r.reason)}
            for r in session.failed
        ],
    }


async def run_session(
    user: UserProfile,
    brokers: Sequence[BrokerDefinition],
    config,
    headless: Optional[bool] = None,
    dry_run: bool = False,
    run_logger=None,
    on_result: Optional[Callable[[RemovalResult], None]] = None,
) -> RemovalSession:
    """
    Wire the browser, oracle, analyzer and stores from config and run a session.

    Raises:
        SetupError: LLM configuration invalid or the browser cannot start
    """
    session_store = SessionStore(config.session_file)
    evidence_store = EvidenceStore(config.screenshot_dir)

    if dry_run:
        logger.info("Dry run: no browser, scripted page answers")
        workflow = RemovalWorkflow(
            ScriptedOracle(), evidence_store, analyzer=None,
            settle_delay=0, verify_delay=0, run_logger=run_logger,
        )
        return await SessionOrchestrator(workflow, session_store, run_logger, on_result).run(user, brokers)

    oracle_llm_config = LLMPresets.oracle()
    analysis_llm_config = LLMPresets.analysis()
    oracle_llm = create_llm_client(oracle_llm_config)
    analysis_llm = create_llm_client(analysis_llm_config)
    if run_logger:
        run_logger.log_json(
            {"oracle": oracle_llm_config.to_dict(), "analysis": analysis_llm_config.to_dict()},
            "LLM configuration",
        )

    analyzer = OutcomeAnalyzer(
        analysis_llm,
        catalog=BrokerCatalog(config.brokers_file),
        threshold=config.diagnosis_confidence_threshold,
    )
    browser = await open_browser(config, headless=headless)
    try:
        workflow = RemovalWorkflow(
            PlaywrightOracle.from_config(browser.page, oracle_llm, config),
            evidence_store,
            analyzer=analyzer,
            settle_delay=config.settle_delay,
            verify_delay=config.verify_delay,
            run_logger=run_logger,
        )
        return await SessionOrchestrator(workflow, session_store, run_logger, on_result).run(user, brokers)
    finally:
        await browser.close()
