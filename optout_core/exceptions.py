"""
Opt-out exceptions

Setup errors abort a run before any broker is processed. Navigation,
extraction and evidence errors are scoped to a single broker attempt and are
downgraded to a failed result at the broker boundary. Analysis errors never
leave the Outcome Analyzer.
"""

from typing import List, Optional


class OptOutError(Exception):
    """Base exception for the opt-out tool"""
    pass


class SetupError(OptOutError):
    """Catalog/profile invalid or the browser session cannot start"""
    pass


class NavigationError(OptOutError):
    """Page could not be loaded (network failure, timeout)"""
    pass


class ExtractionError(OptOutError):
    """Oracle unreachable or its answer does not conform to the requested shape"""
    pass


class EvidenceError(OptOutError):
    """Screenshot could not be captured"""
    pass


class AnalysisError(OptOutError):
    """Internal fault of the Outcome Analyzer"""
    pass


class LLMError(OptOutError):
    """LLM backend returned an error response"""
    pass


class ProfileValidationError(OptOutError, ValueError):
    """User profile failed validation"""

    def __init__(self, problems: List[str], message: Optional[str] = None):
        self.problems = list(problems)
        super().__init__(message or "Invalid user profile: " + "; ".join(self.problems))
