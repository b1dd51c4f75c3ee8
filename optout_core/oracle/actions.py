"""
Atomic browser interactions addressed by index selectors.

Each function returns {success, selector, error} and never raises; the
caller decides what a failed step means.
"""

import random
from typing import Any, Dict

from .page_context import selector_for


async def click(page, selector: str, timeout_ms: int = 8000) -> Dict[str, Any]:
    result = {"success": False, "selector": selector, "error": None}
    try:
        loc = page.locator(str(selector)).first
        await loc.scroll_into_view_if_needed(timeout=timeout_ms)
        await loc.click(timeout=timeout_ms)
        result["success"] = True
    except Exception as e:
        # Fallback: direct DOM click
        try:
            await page.evaluate(
                "(s) => { const el=document.querySelector(s); if(el) el.click(); }",
                selector,
            )
            result["success"] = True
        except Exception as e2:
            result["error"] = f"Click failed: {e}, fallback: {e2}"
    return result


async def fill_field(page, selector: str, value: str, timeout_ms: int = 8000) -> Dict[str, Any]:
    result = {"success": False, "selector": selector, "value": value, "error": None}
    try:
        loc = page.locator(str(selector)).first
        await loc.wait_for(state="visible", timeout=timeout_ms)
        await loc.fill(str(value), timeout=timeout_ms)
        # Trigger validation events
        await page.evaluate(
            """(s) => {
                const el = document.querySelector(s);
                if (!el) return;
                el.dispatchEvent(new Event('input', {bubbles: true}));
                el.dispatchEvent(new Event('change', {bubbles: true}));
                el.blur();
            }""",
            selector,
        )
        # Human-like delay
        await page.wait_for_timeout(150 + int(random.random() * 350))
        result["success"] = True
    except Exception as e:
        result["error"] = str(e)
    return result


async def check(page, selector: str, timeout_ms: int = 8000) -> Dict[str, Any]:
    result = {"success": False, "selector": selector, "error": None}
    try:
        await page.locator(str(selector)).first.check(timeout=timeout_ms, force=True)
        result["success"] = True
    except Exception as e:
        result["error"] = str(e)
    return result


async def select_option(page, selector: str, value: str, timeout_ms: int = 8000) -> Dict[str, Any]:
    result = {"success": False, "selector": selector, "value": value, "error": None}
    try:
        loc = page.locator(str(selector)).first
        try:
            await loc.select_option(label=str(value), timeout=timeout_ms)
        except Exception:
            await loc.select_option(value=str(value), timeout=timeout_ms)
        result["success"] = True
    except Exception as e:
        result["error"] = str(e)
    return result


async def execute_action(page, action: Dict, timeout_ms: int = 8000) -> Dict[str, Any]:
    """
    Execute one step of an LLM action plan.

    Args:
        page: Playwright page
        action: {type: fill|click|check|select, idx: int, value?: str}
    """
    action_type = str(action.get("type") or "").lower()
    try:
        selector = selector_for(action.get("idx"))
    except (TypeError, ValueError):
        return {"success": False, "error": f"Invalid element index: {action.get('idx')!r}"}

    if action_type == "click":
        return await click(page, selector, timeout_ms)
    elif action_type == "fill":
        return await fill_field(page, selector, action.get("value", ""), timeout_ms)
    elif action_type == "check":
        return await check(page, selector, timeout_ms)
    elif action_type == "select":
        return await select_option(page, selector, action.get("value", ""), timeout_ms)
    else:
        return {"success": False, "error": f"Unknown action type: {action_type}"}
