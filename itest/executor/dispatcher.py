"""Execution dispatcher — routes descriptors to typed handlers on a session."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Mapping

from itest.backend.session import (
    AGENT_MAX_STEPS,
    DEFAULT_ACT_RETRIES,
    DEFAULT_ACT_TIMEOUT_MS,
    Session,
)
from itest.models.config import RunnerConfig
from itest.models.descriptor import ActionDescriptor, ActionKind, Engine
from itest.models.execution import AgentTaskResult, ExecutionRecord, ObservedElement
from itest.translator.translator import Translator, navigation_keyword

from .context import ExecutionContext
from .errors import BackendExecutionError
from .history import HistoryStore, data_size, utc_timestamp
from .script import ScriptInterpreter

logger = logging.getLogger(__name__)

# Keyword heuristics for the extraction shape hint, checked in order.
_SHAPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("list", ("列表", "表格", "所有", "list", "table", "all ")),
    ("text", ("文本", "内容", "信息", "text", "content")),
    ("links", ("链接", "URL", "url", "link")),
]


def classify_extraction(target: str) -> str:
    """Pick an extraction shape hint for the target phrase, or ``"auto"``."""
    lowered = target.lower()
    for shape, keywords in _SHAPE_KEYWORDS:
        if any(k in target or k.lower() in lowered for k in keywords):
            return shape
    return "auto"


def enrich_rule_error(descriptor: ActionDescriptor, error: BaseException) -> str:
    """Prefix an error with the rule, pattern, params and generated code."""
    lines = [f"Rule: {descriptor.matched_pattern_name or '(unknown)'}"]
    if descriptor.matched_pattern_source:
        lines.append(f"Pattern: {descriptor.matched_pattern_source}")
    lines.append(f"Params: {json.dumps(descriptor.params, ensure_ascii=False, indent=2)}")
    lines.append(f"Code:\n{descriptor.generated_code or ''}")
    return "Rule execution failed:\n" + "\n".join(lines) + f"\nCause: {error}"


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def normalize_elements(elements: list[Any] | None) -> list[ObservedElement]:
    normalized = []
    for index, element in enumerate(elements or [], start=1):
        normalized.append(ObservedElement(
            index=index,
            description=_field(element, "description", "") or "",
            selector=_field(element, "selector", "") or "",
            type=_field(element, "type", "") or "",
            attributes=_field(element, "attributes", None) or {},
        ))
    return normalized


def normalize_agent_result(raw: Any) -> AgentTaskResult:
    if isinstance(raw, AgentTaskResult):
        return raw
    steps = _field(raw, "steps", None) or []
    if isinstance(steps, int):
        steps = [None] * steps
    return AgentTaskResult(
        steps=list(steps),
        result=_field(raw, "result"),
        error=_field(raw, "error"),
        completed=bool(_field(raw, "completed", False)),
    )


class Dispatcher:
    """Executes translated descriptors and records every outcome."""

    def __init__(self, store: HistoryStore, config: RunnerConfig | None = None):
        self.store = store
        self.config = config or RunnerConfig()
        self._handlers: dict[str, Callable[..., Awaitable[Any]]] = {
            ActionKind.GOTO: self._goto,
            ActionKind.EXTRACT: self._extract,
            ActionKind.OBSERVE: self._observe,
            ActionKind.AGENT: self._agent,
            ActionKind.ACT: self._act,
            ActionKind.TEMPLATE: self._act,
        }

    async def execute(
        self,
        descriptor: ActionDescriptor,
        session: Session,
        workflow_id: str = "",
        context: ExecutionContext | None = None,
    ) -> ExecutionRecord:
        """Run one descriptor. Always returns a record, never raises backend errors."""
        context = context or ExecutionContext()
        record_id = uuid.uuid4().hex[:12]
        start = time.perf_counter()
        try:
            Translator.ensure_valid(descriptor)
            handler = self._handlers.get(descriptor.kind, self._act)
            result = await handler(descriptor, session, context)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            message = str(e) or type(e).__name__
            if descriptor.engine == Engine.RULES and not descriptor.is_fallback:
                message = enrich_rule_error(descriptor, e)
            logger.warning("Step failed: %s", descriptor.original_text)
            logger.warning("  Error: %s", message)
            record = ExecutionRecord(
                id=record_id, descriptor=descriptor, success=False,
                error_message=message, duration_ms=duration_ms,
                workflow_id=workflow_id, timestamp=utc_timestamp(),
            )
        else:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info("Step succeeded (%dms): %s", duration_ms, descriptor.original_text)
            record = ExecutionRecord(
                id=record_id, descriptor=descriptor, success=True,
                result=result, duration_ms=duration_ms,
                workflow_id=workflow_id, timestamp=utc_timestamp(),
            )
        self.store.append(record)
        return record

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _goto(self, descriptor: ActionDescriptor, session: Session, context: ExecutionContext) -> dict:
        params = descriptor.params
        keyword = navigation_keyword(params.get("action"))
        if keyword == "refresh":
            logger.debug("Reloading page")
            await session.reload()
            return {"type": "goto", "action": "refresh"}
        if keyword == "back":
            logger.debug("Going back")
            await session.go_back()
            return {"type": "goto", "action": "go_back"}

        url = self._resolve_url(params.get("url"), descriptor, context)
        logger.debug("Navigating to %s", url)
        await session.navigate(url)
        page_title = await session.title()
        return {"type": "goto", "url": url, "page_title": page_title}

    @staticmethod
    def _resolve_url(url: str | None, descriptor: ActionDescriptor, context: ExecutionContext) -> str:
        """Explicit param, then the variable table, then the base URL."""
        final = url
        if url:
            lookup = {**context.variables, **descriptor.captured_variables}
            if lookup.get(url):
                final = lookup[url]
            elif len(url) > 2 and url.startswith("%") and url.endswith("%"):
                final = lookup.get(url[1:-1])
        if not final or final.startswith("%"):
            logger.debug("No usable URL in step, falling back to base URL %s", context.base_url)
            final = context.base_url
        return final

    async def _extract(self, descriptor: ActionDescriptor, session: Session, context: ExecutionContext) -> dict:
        target = descriptor.params["target"]
        shape = classify_extraction(target)
        logger.debug("Extracting '%s' (shape=%s)", target, shape)
        data = await session.extract(target, shape)

        storage_key = descriptor.params.get("variable") or self.store.generate_key(target)
        self.store.put_artifact(storage_key, data)
        logger.info("Extracted data stored under %s", storage_key)
        return {
            "type": "extract",
            "target": target,
            "shape": shape,
            "storage_key": storage_key,
            "data": data,
            "data_size": data_size(data),
        }

    async def _observe(self, descriptor: ActionDescriptor, session: Session, context: ExecutionContext) -> dict:
        target = descriptor.params["target"]
        elements = normalize_elements(await session.observe(target))
        if elements:
            logger.info("Found %d elements for '%s'", len(elements), target)
            for el in elements:
                logger.debug("  %d. %s", el.index, el.description or el.selector or "(unknown element)")
        else:
            logger.info("No elements found for '%s'", target)
        return {
            "type": "observe",
            "target": target,
            "elements_found": len(elements),
            "elements": [el.model_dump() for el in elements],
        }

    async def _agent(self, descriptor: ActionDescriptor, session: Session, context: ExecutionContext) -> dict:
        instruction = descriptor.params["instruction"]
        return await self._run_agent_task(instruction, session)

    async def _run_agent_task(self, instruction: str, session: Session) -> dict:
        logger.debug("Agent task: %s", instruction)
        outcome = normalize_agent_result(await session.run_agent_task(
            instruction, max_steps=AGENT_MAX_STEPS, feedback=False,
        ))
        logger.info("Agent finished %d steps (completed=%s)", len(outcome.steps), outcome.completed)
        if outcome.error:
            logger.warning("Agent reported an error: %s", outcome.error)
            if self.config.fail_on_agent_error:
                raise BackendExecutionError(f"Agent task reported an error: {outcome.error}")
        return {
            "type": "agent",
            "instruction": instruction,
            "steps": len(outcome.steps),
            "result": outcome.result,
            "error": outcome.error,
            "completed": outcome.completed,
        }

    async def _act(self, descriptor: ActionDescriptor, session: Session, context: ExecutionContext) -> dict:
        if descriptor.engine == Engine.RULES and descriptor.generated_code:
            interpreter = ScriptInterpreter(session, variables=descriptor.captured_variables)
            script_result = await interpreter.run(descriptor.generated_code)
            return {
                "type": descriptor.kind,
                "engine": Engine.RULES,
                "rule": descriptor.matched_pattern_name,
                "script": script_result.to_dict(),
            }

        if descriptor.engine == Engine.AGENT:
            instruction = (
                descriptor.generated_code
                or descriptor.params.get("raw")
                or descriptor.resolved_text
            )
            return await self._run_agent_task(instruction, session)

        result = await session.act(
            descriptor.original_text,
            timeout=DEFAULT_ACT_TIMEOUT_MS,
            retries=DEFAULT_ACT_RETRIES,
            variables=dict(descriptor.captured_variables) or None,
        )
        return {
            "type": "act",
            "action": descriptor.original_text,
            "params": descriptor.params,
            "result": result,
        }
