#!/usr/bin/env python3
import random
from typing import Any, Dict, Optional

from ..diagnostics import get_logger
from ..exceptions import SetupError
from .stealth import StealthConfig

logger = get_logger(__name__)


class BrowserSession:
    """One Chromium context and page shared by every broker in a run."""

    def __init__(self, playwright, browser, context, page):
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.page = page
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for name, closer in (
            ("context", getattr(self.context, "close", None)),
            ("browser", getattr(self.browser, "close", None)),
            ("playwright", getattr(self.playwright, "stop", None)),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.debug(f"Ignoring error while closing {name}: {e}")


def build_context_args(config, stealth: StealthConfig) -> Dict[str, Any]:
    vw = 1366 + int(random.random() * 500)
    vh = 768 + int(random.random() * 300)
    return {
        "viewport": {"width": vw, "height": vh},
        "user_agent": stealth.get_user_agent(),
        "locale": config.locale,
        "timezone_id": config.timezone_id,
        "extra_http_headers": {
            "Accept-Language": f"{config.locale},en;q=0.8",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        },
    }


async def open_browser(config, headless: Optional[bool] = None) -> BrowserSession:
    """
    Launch Chromium with anti-detection settings and open a single page.

    Raises:
        SetupError: Playwright or the browser could not be started
    """
    from playwright.async_api import async_playwright

    stealth = StealthConfig(locale=config.locale)
    launch_args = {
        "headless": bool(config.headless if headless is None else headless),
        "args": ["--no-sandbox"] + stealth.get_chrome_args(),
    }
    playwright = None
    try:
        playwright = await async_playwright().start()
        browser = await playwright.chromium.launch(**launch_args)
        context = await browser.new_context(**build_context_args(config, stealth))
        await stealth.apply_to_context(context)
        context.set_default_timeout(config.action_timeout_ms)
        context.set_default_navigation_timeout(config.navigation_timeout_ms)
        page = await context.new_page()
    except Exception as e:
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception:
                pass
        hint = " (run: playwright install chromium)" if "Executable doesn't exist" in str(e) else ""
        raise SetupError(f"Could not start browser: {e}{hint}") from e
    logger.info(f"Browser started (headless={launch_args['headless']})")
    return BrowserSession(playwright, browser, context, page)
