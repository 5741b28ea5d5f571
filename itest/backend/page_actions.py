"""Page actions — runs primitive PageAction models as Playwright calls."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from itest.models.execution import PageAction

logger = logging.getLogger(__name__)

# Collects interactive elements with a stable selector for each.
CATALOGUE_SCRIPT = """() => {
    const interactiveTags = new Set([
        'a', 'button', 'input', 'select', 'textarea', 'details', 'summary'
    ]);
    const interactiveRoles = new Set([
        'button', 'link', 'textbox', 'checkbox', 'radio', 'combobox',
        'listbox', 'menuitem', 'tab', 'switch', 'slider'
    ]);

    function getSelector(el) {
        if (el.dataset && el.dataset.testid) return `[data-testid="${el.dataset.testid}"]`;
        if (el.id) return `#${CSS.escape(el.id)}`;
        const tag = el.tagName.toLowerCase();
        if (el.name && ['input', 'select', 'textarea'].includes(tag)) {
            return `${tag}[name="${el.name}"]`;
        }
        if (el.getAttribute('aria-label')) {
            return `[aria-label="${el.getAttribute('aria-label')}"]`;
        }
        const text = (el.textContent || '').trim();
        if (text && text.length <= 40 && ['a', 'button'].includes(tag)) {
            return `${tag}:has-text("${text.replace(/"/g, '\\\\"')}")`;
        }
        let sel = tag;
        if (el.className && typeof el.className === 'string') {
            const cls = el.className.trim().split(/\\s+/).slice(0, 2).join('.');
            if (cls) sel += '.' + cls;
        }
        return sel;
    }

    function getType(el) {
        const tag = el.tagName.toLowerCase();
        if (tag === 'a') return 'link';
        if (tag === 'button' || (tag === 'input' && el.type === 'submit')) return 'button';
        if (tag === 'input') return 'input';
        if (tag === 'select') return 'dropdown';
        if (tag === 'textarea') return 'textarea';
        return el.getAttribute('role') || tag;
    }

    const results = [];
    for (const el of document.querySelectorAll('*')) {
        const tag = el.tagName.toLowerCase();
        const role = el.getAttribute('role') || '';
        const isInteractive = interactiveTags.has(tag) ||
            interactiveRoles.has(role) ||
            el.getAttribute('onclick') ||
            el.getAttribute('tabindex') === '0';
        if (!isInteractive) continue;
        if (el.offsetParent === null && !el.closest('details')) continue;

        const attrs = {};
        for (const attr of el.attributes) {
            if (['class', 'style'].includes(attr.name)) continue;
            attrs[attr.name] = attr.value;
        }
        results.push({
            tag: tag,
            type: getType(el),
            selector: getSelector(el),
            text: (el.textContent || '').trim().substring(0, 100),
            label: el.getAttribute('aria-label') || el.getAttribute('placeholder') || el.name || '',
            attributes: attrs,
        });
    }
    return results;
}"""


async def collect_elements(page: Page) -> list[dict[str, Any]]:
    """Catalogue the visible interactive elements on the page."""
    elements = await page.evaluate(CATALOGUE_SCRIPT)
    logger.debug("Catalogued %d interactive elements", len(elements))
    return elements


async def page_text(page: Page) -> str:
    return await page.evaluate("() => document.body ? document.body.innerText : ''")


async def run_action(
    page: Page,
    action: PageAction,
    timeout: int = 10000,
    screenshot_dir: Path | None = None,
) -> Any:
    """Execute a single action on the Playwright page.

    Args:
        page: Playwright page instance.
        action: The action to execute; ``selector`` must already be resolved.
        timeout: Selector timeout in milliseconds (default 10000).
        screenshot_dir: Where ``screenshot`` actions write their files.

    Returns the screenshot path for ``screenshot`` actions, otherwise None.
    """
    logger.debug("Running action: %s | selector=%s | value=%s | %s",
                 action.action_type, action.selector, action.value,
                 action.description or "")

    match action.action_type:
        case "click":
            if not action.selector:
                raise ValueError("click action requires a selector")
            logger.debug("Clicking: %s", action.selector)
            await page.click(action.selector, timeout=timeout)

        case "fill":
            if not action.selector:
                raise ValueError("fill action requires a selector")
            logger.debug("Filling %s with '%s'", action.selector,
                         "***" if "password" in action.selector.lower() else action.value)
            await page.fill(action.selector, action.value or "", timeout=timeout)

        case "clear":
            if not action.selector:
                raise ValueError("clear action requires a selector")
            logger.debug("Clearing: %s", action.selector)
            await page.fill(action.selector, "", timeout=timeout)

        case "select":
            if not action.selector:
                raise ValueError("select action requires a selector")
            logger.debug("Selecting '%s' in %s", action.value, action.selector)
            await page.select_option(action.selector, label=action.value or "", timeout=timeout)

        case "hover":
            if not action.selector:
                raise ValueError("hover action requires a selector")
            logger.debug("Hovering over: %s", action.selector)
            await page.hover(action.selector, timeout=timeout)

        case "scroll":
            if action.selector:
                logger.debug("Scrolling element into view: %s", action.selector)
                await page.locator(action.selector).first.scroll_into_view_if_needed(timeout=timeout)
            elif action.value:
                logger.debug("Scrolling to y=%s", action.value)
                await page.evaluate("(y) => window.scrollTo(0, y)", int(action.value))
            else:
                logger.debug("Scrolling to bottom of page")
                await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")

        case "wait":
            if action.selector:
                logger.debug("Waiting for selector: %s", action.selector)
                await page.wait_for_selector(action.selector, timeout=timeout)
            elif action.value:
                logger.debug("Waiting %sms...", action.value)
                await page.wait_for_timeout(int(action.value))
            else:
                await page.wait_for_timeout(1000)

        case "keyboard":
            key = action.value or "Enter"
            logger.debug("Pressing key: %s", key)
            await page.keyboard.press(key)

        case "screenshot":
            name = action.value or "screenshot"
            if not name.endswith(".png"):
                name += ".png"
            path = (screenshot_dir or Path("screenshots")) / name
            path.parent.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(path), full_page=True)
            logger.info("Screenshot saved to %s", path)
            return str(path)

        case _:
            raise ValueError(f"Unknown action type: {action.action_type}")
    return None


async def wait_for_settle(page: Page, timeout: int = 10000) -> None:
    """Wait for network idle, tolerating pages that never go quiet."""
    try:
        await page.wait_for_load_state("networkidle", timeout=min(timeout, 10000))
    except PlaywrightTimeoutError:
        logger.debug("Network idle timeout, continuing")
