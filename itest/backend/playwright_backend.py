"""Playwright backend — browser sessions driven by page actions and AI decisions."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from playwright.async_api import BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from itest.ai.client import AIClient
from itest.ai.prompts.browser import (
    ACT_SYSTEM_PROMPT,
    AGENT_SYSTEM_PROMPT,
    EXTRACT_SYSTEM_PROMPT,
    OBSERVE_SYSTEM_PROMPT,
    build_act_prompt,
    build_agent_prompt,
    build_extract_prompt,
    build_observe_prompt,
)
from itest.executor.errors import BackendExecutionError, SessionUnavailable
from itest.models.config import RunnerConfig
from itest.models.execution import AgentTaskResult, PageAction

from .page_actions import collect_elements, page_text, run_action, wait_for_settle
from .session import AGENT_MAX_STEPS, DEFAULT_ACT_RETRIES, DEFAULT_ACT_TIMEOUT_MS

logger = logging.getLogger(__name__)

_NAVIGATION_TIMEOUT_MS = 30000


def resolve_actions(raw_actions: list[Any], elements: list[dict[str, Any]]) -> list[PageAction]:
    """Build PageActions from an AI decision, mapping element indexes to selectors."""
    actions = []
    for raw in raw_actions or []:
        if not isinstance(raw, Mapping) or not raw.get("action_type"):
            logger.warning("Ignoring malformed action from AI: %r", raw)
            continue
        action = PageAction(
            action_type=str(raw["action_type"]),
            element_index=raw.get("element_index"),
            selector=raw.get("selector"),
            value=None if raw.get("value") is None else str(raw["value"]),
            description=raw.get("description") or "",
        )
        index = action.element_index
        if index is not None and 0 <= index < len(elements):
            action.selector = elements[index].get("selector") or action.selector
        actions.append(action)
    return actions


class PlaywrightSession:
    """One browser page bound to a workflow.

    Navigation calls go straight to Playwright. ``act``, ``extract``,
    ``observe`` and ``run_agent_task`` ask the AI client for a JSON decision
    and then run primitive page actions, so they need an AI client.
    """

    def __init__(
        self,
        page: Page,
        context: BrowserContext,
        ai_client: AIClient | None = None,
        screenshot_dir: Path | None = None,
    ):
        self.page = page
        self.context = context
        self.ai_client = ai_client
        self.screenshot_dir = screenshot_dir

    # -- navigation --------------------------------------------------------

    async def navigate(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded", timeout=_NAVIGATION_TIMEOUT_MS)
        await wait_for_settle(self.page)

    async def go_back(self) -> None:
        await self.page.go_back(wait_until="domcontentloaded", timeout=_NAVIGATION_TIMEOUT_MS)
        await wait_for_settle(self.page)

    async def reload(self) -> None:
        await self.page.reload(wait_until="domcontentloaded", timeout=_NAVIGATION_TIMEOUT_MS)
        await wait_for_settle(self.page)

    async def title(self) -> str:
        return await self.page.title()

    # -- AI-driven operations ----------------------------------------------

    def _require_ai(self, operation: str) -> AIClient:
        if self.ai_client is None:
            raise BackendExecutionError(
                f"'{operation}' needs an AI client; set ANTHROPIC_API_KEY to enable it"
            )
        return self.ai_client

    async def _decide(self, system_prompt: str, user_message: str) -> dict[str, Any]:
        ai = self._require_ai("ai decision")
        try:
            return await asyncio.to_thread(ai.complete_json, system_prompt, user_message)
        except ValueError as e:
            raise BackendExecutionError(str(e)) from e

    async def act(
        self,
        text: str,
        timeout: int = DEFAULT_ACT_TIMEOUT_MS,
        retries: int = DEFAULT_ACT_RETRIES,
        variables: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
        self._require_ai("act")
        attempts = retries + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return await self._act_once(text, timeout, dict(variables or {}))
            except (PlaywrightError, ValueError, BackendExecutionError) as e:
                last_error = e
                logger.warning("Act attempt %d/%d failed for '%s': %s", attempt, attempts, text, e)
        raise BackendExecutionError(
            f"Action failed after {attempts} attempts: {last_error}"
        ) from last_error

    async def _act_once(self, text: str, timeout: int, variables: dict[str, str]) -> dict[str, Any]:
        elements = await collect_elements(self.page)
        decision = await self._decide(
            ACT_SYSTEM_PROMPT,
            build_act_prompt(text, self.page.url, await self.page.title(), elements, variables),
        )
        actions = resolve_actions(decision.get("actions", []), elements)
        if not actions:
            raise BackendExecutionError(
                f"No action found for '{text}': {decision.get('reasoning', 'no reasoning given')}"
            )
        outputs = []
        for action in actions:
            outputs.append(await run_action(self.page, action, timeout, self.screenshot_dir))
        return {
            "actions": [a.model_dump() for a in actions],
            "outputs": [o for o in outputs if o is not None],
            "reasoning": decision.get("reasoning", ""),
        }

    async def extract(self, target: str, shape_hint: str = "auto") -> Any:
        self._require_ai("extract")
        decision = await self._decide(
            EXTRACT_SYSTEM_PROMPT,
            build_extract_prompt(target, shape_hint, self.page.url, await page_text(self.page)),
        )
        if not decision.get("found", True):
            logger.info("Nothing matched extraction target '%s'", target)
        return decision.get("data")

    async def observe(self, target: str) -> list[dict[str, Any]]:
        self._require_ai("observe")
        elements = await collect_elements(self.page)
        decision = await self._decide(
            OBSERVE_SYSTEM_PROMPT, build_observe_prompt(target, self.page.url, elements),
        )
        found = []
        for entry in decision.get("elements", []):
            index = entry.get("element_index") if isinstance(entry, Mapping) else None
            if not isinstance(index, int) or not 0 <= index < len(elements):
                logger.debug("Dropping observed element with bad index: %r", entry)
                continue
            element = elements[index]
            found.append({
                "description": entry.get("description") or element.get("text", ""),
                "selector": element.get("selector", ""),
                "type": element.get("type", ""),
                "attributes": element.get("attributes", {}),
            })
        return found

    async def run_agent_task(
        self, instruction: str, max_steps: int = AGENT_MAX_STEPS, feedback: bool = False,
    ) -> AgentTaskResult:
        self._require_ai("agent")
        history: list[str] = []
        steps: list[dict[str, Any]] = []

        for turn in range(1, max_steps + 1):
            elements = await collect_elements(self.page)
            decision = await self._decide(
                AGENT_SYSTEM_PROMPT,
                build_agent_prompt(instruction, history, self.page.url,
                                   await self.page.title(), elements),
            )
            if decision.get("done"):
                error = decision.get("error")
                return AgentTaskResult(
                    steps=steps, result=decision.get("result"),
                    error=error, completed=not error,
                )

            for action in resolve_actions(decision.get("actions", []), elements):
                step = {"turn": turn, **action.model_dump()}
                try:
                    await run_action(self.page, action, screenshot_dir=self.screenshot_dir)
                    history.append(action.description or action.action_type)
                    step["success"] = True
                except (PlaywrightError, ValueError) as e:
                    history.append(f"FAILED {action.description or action.action_type}: {e}")
                    step["success"] = False
                    step["error"] = str(e)
                steps.append(step)
                if feedback:
                    logger.info("  Agent turn %d: %s", turn, history[-1])

        return AgentTaskResult(
            steps=steps,
            error=f"Stopped after {max_steps} steps without finishing",
            completed=False,
        )

    async def close(self) -> None:
        await self.context.close()


class PlaywrightSessionProvider:
    """Launches Chromium lazily and keeps one session per workflow id."""

    def __init__(
        self,
        config: RunnerConfig | None = None,
        ai_client: AIClient | None = None,
        screenshot_dir: Path | None = None,
    ):
        self.config = config or RunnerConfig()
        self.ai_client = ai_client
        self.screenshot_dir = screenshot_dir
        self._playwright = None
        self._browser = None
        self._sessions: dict[str, PlaywrightSession] = {}
        self._lock = asyncio.Lock()

    @property
    def workflows(self) -> list[str]:
        return list(self._sessions)

    async def get_session(self, workflow_id: str) -> PlaywrightSession:
        async with self._lock:
            session = self._sessions.get(workflow_id)
            if session is not None:
                return session
            try:
                if self._browser is None:
                    logger.debug("Launching Chromium (headless=%s)...", self.config.headless)
                    self._playwright = await async_playwright().start()
                    self._browser = await self._playwright.chromium.launch(
                        headless=self.config.headless,
                        args=["--disable-blink-features=AutomationControlled"],
                    )
                context = await self._browser.new_context(viewport={
                    "width": self.config.viewport_width,
                    "height": self.config.viewport_height,
                })
                page = await context.new_page()
            except PlaywrightError as e:
                if self._browser is None and self._playwright is not None:
                    await self._playwright.stop()
                    self._playwright = None
                raise SessionUnavailable(
                    f"Could not start a browser session for workflow '{workflow_id}': {e}"
                ) from e

            session = PlaywrightSession(page, context, self.ai_client, self.screenshot_dir)
            self._sessions[workflow_id] = session
            logger.info("Started browser session for workflow %s", workflow_id)
            return session

    async def close_all(self) -> None:
        async with self._lock:
            for workflow_id, session in self._sessions.items():
                logger.debug("Closing session for workflow %s", workflow_id)
                await session.close()
            self._sessions.clear()
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
