"""
optout_core package: automated opt-out requests to data broker websites

Usage:
    from optout_core import BrokerCatalog, RemovalWorkflow, ScriptedOracle, EvidenceStore

    brokers = BrokerCatalog("brokers.json").load()
    workflow = RemovalWorkflow(ScriptedOracle(), EvidenceStore("screenshots"))
    result = await workflow.remove(brokers[0], user)
"""
from .config import Config, config
from .llm_config import LLMConfig, LLMPresets
from .llm_factory import create_llm_client
from .exceptions import (
    OptOutError,
    SetupError,
    NavigationError,
    ExtractionError,
    EvidenceError,
    AnalysisError,
    LLMError,
    ProfileValidationError,
)
from .models import (
    UserProfile,
    BrokerDefinition,
    LearnedInstruction,
    Diagnosis,
    PageStructuralAnalysis,
    RemovalResult,
    RemovalSession,
    validate_user_field,
)
from .stores import BrokerCatalog, UserStore, SessionStore, EvidenceStore
from .oracle import PageOracle, PlaywrightOracle, ScriptedOracle, FactShape, FactField, open_browser
from .analyzer import OutcomeAnalyzer
from .workflow import RemovalWorkflow, Phase, SEARCH_FIRST_BROKERS
from .session import SessionOrchestrator, run_session, summarize

__all__ = [
    # Config
    "Config",
    "config",
    "LLMConfig",
    "LLMPresets",
    "create_llm_client",
    # Errors
    "OptOutError",
    "SetupError",
    "NavigationError",
    "ExtractionError",
    "EvidenceError",
    "AnalysisError",
    "LLMError",
    "ProfileValidationError",
    # Data model
    "UserProfile",
    "BrokerDefinition",
    "LearnedInstruction",
    "Diagnosis",
    "PageStructuralAnalysis",
    "RemovalResult",
    "RemovalSession",
    "validate_user_field",
    # Stores
    "BrokerCatalog",
    "UserStore",
    "SessionStore",
    "EvidenceStore",
    # Oracle
    "PageOracle",
    "PlaywrightOracle",
    "ScriptedOracle",
    "FactShape",
    "FactField",
    "open_browser",
    # Core
    "OutcomeAnalyzer",
    "RemovalWorkflow",
    "Phase",
    "SEARCH_FIRST_BROKERS",
    "SessionOrchestrator",
    "run_session",
    "summarize",
]

__version__ = "0.1.0"
