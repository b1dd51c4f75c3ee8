"""
User-Friendly Error Handler.

Turns a failed broker attempt (an exception or the recorded error text) into a
message, a suggestion and a category for the final report.
"""

from typing import Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)

ErrorLike = Union[BaseException, str]


def format_user_friendly_error(
    error: ErrorLike,
    technical_details: Optional[str] = None
) -> Dict:
    """
    Convert a technical error to a user-friendly message.

    Returns:
        {
            "message": str,          # User-friendly message
            "suggestion": str,       # Actionable suggestion
            "technical": str,        # Technical details
            "severity": str,         # "critical", "error", "warning"
            "can_retry": bool        # Whether a later run might succeed
        }
    """
    error_str = str(error)

    # First matching pattern wins, so specific patterns come first
    for pattern, friendly_error in ERROR_MAPPINGS.items():
        if pattern in error_str.lower():
            result = friendly_error.copy()
            result["technical"] = technical_details or error_str
            logger.debug(f"Mapped error to user-friendly: {result['message']}")
            return result

    return {
        "message": "The removal request could not be completed",
        "suggestion": "Check the screenshot and run log, then retry or finish the opt-out manually",
        "technical": technical_details or error_str,
        "severity": "error",
        "can_retry": True
    }


# Error mappings: lowercase pattern -> user-friendly info
ERROR_MAPPINGS = {
    # Workflow outcomes
    "could not find user listing": {
        "message": "No listing matching your details was found",
        "suggestion": "Search the broker manually; your record may be listed under an old address or phone number",
        "severity": "warning",
        "can_retry": False
    },
    "form errors detected": {
        "message": "The broker's form reported validation errors",
        "suggestion": "Check the screenshot for the rejected fields and correct your saved profile if needed",
        "severity": "error",
        "can_retry": True
    },
    "still on form page": {
        "message": "The form did not submit",
        "suggestion": "A required field, checkbox or CAPTCHA probably blocked submission; the next run replays any learned fix",
        "severity": "error",
        "can_retry": True
    },
    "unable to verify success": {
        "message": "The outcome could not be confirmed",
        "suggestion": "Check your email for a confirmation link and review the screenshot",
        "severity": "warning",
        "can_retry": True
    },

    # Anti-bot measures
    "recaptcha": {
        "message": "reCAPTCHA detected",
        "suggestion": "reCAPTCHA must be solved by hand; rerun with --headed and complete it",
        "severity": "warning",
        "can_retry": False
    },
    "captcha": {
        "message": "CAPTCHA detected - user interaction required",
        "suggestion": "Rerun with --headed and solve the CAPTCHA when it appears",
        "severity": "warning",
        "can_retry": False
    },
    "cloudflare": {
        "message": "Cloudflare protection blocked the browser",
        "suggestion": "Retry later or run headed from a residential connection",
        "severity": "warning",
        "can_retry": True
    },

    # LLM errors
    "api error 401": {
        "message": "The LLM provider rejected the API key",
        "suggestion": "Check OPENAI_API_KEY (or the key for your configured provider)",
        "severity": "critical",
        "can_retry": False
    },
    "api error 429": {
        "message": "The LLM provider is rate limiting requests",
        "suggestion": "Wait a few minutes and run again",
        "severity": "warning",
        "can_retry": True
    },
    "ollama": {
        "message": "Error talking to Ollama",
        "suggestion": "Check that Ollama is running: ollama serve",
        "severity": "critical",
        "can_retry": False
    },
    "oracle unavailable": {
        "message": "The page-understanding model did not answer",
        "suggestion": "Check network access and the configured LLM provider",
        "severity": "error",
        "can_retry": True
    },

    # Network/timeout errors
    "timeout": {
        "message": "The site took too long to respond",
        "suggestion": "Check your connection or whether the site is up, then retry",
        "severity": "warning",
        "can_retry": True
    },
    "err_name_not_resolved": {
        "message": "The broker's domain could not be resolved",
        "suggestion": "The opt-out URL may be outdated; update brokers.json",
        "severity": "error",
        "can_retry": False
    },
    "connection refused": {
        "message": "Could not connect to the site",
        "suggestion": "Check that the opt-out URL is correct and the site is up",
        "severity": "error",
        "can_retry": True
    },
    "failed to load": {
        "message": "The opt-out page could not be loaded",
        "suggestion": "Check that the opt-out URL is correct and the site is up",
        "severity": "error",
        "can_retry": True
    },

    # Browser/page errors
    "target closed": {
        "message": "The browser was closed during the attempt",
        "suggestion": "Run the broker again",
        "severity": "error",
        "can_retry": True
    },
    "screenshot failed": {
        "message": "No screenshot could be taken",
        "suggestion": "Run the broker again to collect evidence",
        "severity": "warning",
        "can_retry": True
    },
}


def get_error_category(error: ErrorLike) -> str:
    """
    Categorize error type.

    Returns:
        "network", "browser", "form", "listing", "verification", "captcha", "llm" or "unknown"
    """
    error_str = str(error).lower()

    if "listing" in error_str:
        return "listing"
    elif any(k in error_str for k in ["captcha", "cloudflare"]):
        return "captcha"
    elif any(k in error_str for k in ["unable to verify", "success indicators"]):
        return "verification"
    elif any(k in error_str for k in ["form", "field", "checkbox"]):
        return "form"
    elif any(k in error_str for k in ["llm", "model", "ollama", "api error", "oracle"]):
        return "llm"
    elif any(k in error_str for k in ["timeout", "connection", "network", "err_name", "failed to load"]):
        return "network"
    elif any(k in error_str for k in ["browser", "target", "navigation", "screenshot"]):
        return "browser"
    else:
        return "unknown"


def should_retry_error(error: ErrorLike) -> bool:
    return format_user_friendly_error(error).get("can_retry", False)


def format_error_for_logging(error: ErrorLike, context: str = "") -> str:
    """Multi-line error description for logs and the final report."""
    friendly = format_user_friendly_error(error)

    lines = [
        f"❌ {friendly['message']}",
        f"💡 {friendly['suggestion']}",
        f"🔧 Technical: {friendly['technical']}"
    ]
    if context:
        lines.insert(0, f"📍 Context: {context}")
    return "\n".join(lines)


def create_error_response(error: ErrorLike) -> Dict:
    """Standardized error record for the session report."""
    friendly = format_user_friendly_error(error)
    return {
        "message": friendly["message"],
        "suggestion": friendly["suggestion"],
        "severity": friendly["severity"],
        "can_retry": friendly["can_retry"],
        "category": get_error_category(error),
    }
