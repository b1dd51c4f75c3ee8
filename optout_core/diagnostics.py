import logging
import os
from typing import Dict


_LOGGER_CACHE: Dict[str, logging.Logger] = {}


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger.

    Respects OPTOUT_DEBUG env var to set DEBUG/INFO level.
    Ensures we don't duplicate handlers across multiple imports.
    """
    lg = _LOGGER_CACHE.get(name)
    if lg:
        return lg
    lg = logging.getLogger(name)
    # Configure only if not configured yet
    if not lg.handlers:
        level = logging.DEBUG if str(os.getenv("OPTOUT_DEBUG", "false")).lower() == "true" else logging.INFO
        lg.setLevel(level)
        handler = logging.StreamHandler()
        handler.setLevel(level)
        fmt = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(fmt)
        lg.addHandler(handler)
        lg.propagate = False
    _LOGGER_CACHE[name] = lg
    return lg


def set_debug(enabled: bool) -> None:
    """Switch every cached logger (and its handlers) between DEBUG and INFO."""
    level = logging.DEBUG if enabled else logging.INFO
    os.environ["OPTOUT_DEBUG"] = "true" if enabled else "false"
    for lg in _LOGGER_CACHE.values():
        lg.setLevel(level)
        for handler in lg.handlers:
            handler.setLevel(level)
