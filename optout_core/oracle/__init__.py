"""
Page oracle - the page-understanding boundary of the removal workflow

- PageOracle: navigate / extract_facts / perform_action / capture_evidence
- PlaywrightOracle: live Chromium page driven by a vision LLM
- ScriptedOracle: deterministic answers for tests and dry runs
"""

from .base import PageOracle
from .browser import BrowserSession, open_browser
from .playwright_oracle import PlaywrightOracle, parse_json_response
from .scripted import ScriptedOracle
from .shape import BOOLEAN, NUMBER, STRING, STRING_LIST, FactField, FactShape, shape

__all__ = [
    'PageOracle',
    'PlaywrightOracle',
    'ScriptedOracle',
    'BrowserSession',
    'open_browser',
    'parse_json_response',
    'FactField',
    'FactShape',
    'shape',
    'BOOLEAN',
    'NUMBER',
    'STRING',
    'STRING_LIST',
]
