#!/usr/bin/env python3
from dataclasses import dataclass
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Config:
    """Application configuration"""
    brokers_file: Path = Path(os.getenv("OPTOUT_BROKERS_FILE", "brokers.json"))
    user_file: Path = Path(os.getenv("OPTOUT_USER_FILE", "user.json"))
    session_file: Path = Path(os.getenv("OPTOUT_SESSION_FILE", "removal-session.json"))
    screenshot_dir: Path = Path(os.getenv("OPTOUT_SCREENSHOT_DIR", "./screenshots"))
    log_dir: Path = Path(os.getenv("OPTOUT_LOG_DIR", "./logs"))
    enable_debug: bool = os.getenv("OPTOUT_DEBUG", "false").lower() == "true"
    headless: bool = os.getenv("OPTOUT_HEADLESS", "true").lower() == "true"
    locale: str = os.getenv("OPTOUT_LOCALE", "en-US")
    timezone_id: str = os.getenv("OPTOUT_TIMEZONE", "America/Los_Angeles")

    # Browser timings (milliseconds)
    navigation_timeout_ms: int = int(os.getenv("OPTOUT_NAVIGATION_TIMEOUT_MS", "30000"))
    settle_timeout_ms: int = int(os.getenv("OPTOUT_SETTLE_TIMEOUT_MS", "15000"))
    action_timeout_ms: int = int(os.getenv("OPTOUT_ACTION_TIMEOUT_MS", "8000"))

    # Workflow pauses (seconds)
    settle_delay: float = float(os.getenv("OPTOUT_SETTLE_DELAY", "1.0"))
    verify_delay: float = float(os.getenv("OPTOUT_VERIFY_DELAY", "2.0"))

    # Page oracle: send a screenshot along with the page context
    oracle_vision: bool = os.getenv("OPTOUT_ORACLE_VISION", "true").lower() in ["true", "1", "yes"]
    oracle_text_chars: int = int(os.getenv("OPTOUT_ORACLE_TEXT_CHARS", "6000"))

    # Failure analysis feeds back into the broker catalog at or above this score
    diagnosis_confidence_threshold: int = int(os.getenv("OPTOUT_DIAGNOSIS_THRESHOLD", "6"))

config = Config()
