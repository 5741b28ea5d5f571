"""Translation engine — turns one step's text into a typed action descriptor."""

from __future__ import annotations

import logging
import shlex
from typing import Any, Mapping, Optional

from itest.executor.context import ExecutionContext
from itest.executor.errors import InvalidDescriptor
from itest.models.descriptor import (
    FALLBACK_PATTERN_NAME,
    ActionDescriptor,
    ActionKind,
    Engine,
)
from itest.models.patterns import Pattern
from itest.patterns.registry import PatternRegistry
from itest.url_utils import sanitize_url

from .placeholders import resolve_placeholders
from .templates import render_template

logger = logging.getLogger(__name__)

REFRESH_KEYWORDS = frozenset({"刷新", "重新加载", "refresh", "reload"})
BACK_KEYWORDS = frozenset({"返回", "后退", "back", "go back"})


def navigation_keyword(action: Optional[str]) -> Optional[str]:
    """Map a goto ``action`` param to ``"refresh"``, ``"back"`` or None."""
    if not action:
        return None
    key = action.strip().lower()
    if key in REFRESH_KEYWORDS:
        return "refresh"
    if key in BACK_KEYWORDS:
        return "back"
    return None


def _build_params(match, groups: tuple[str, ...]) -> dict[str, str]:
    params: dict[str, str] = {}
    for index, name in enumerate(groups, start=1):
        if index > (match.re.groups or 0):
            break
        value = match.group(index)
        if value is None:
            continue
        value = value.strip()
        if value:
            params[name] = value
    return params


class Translator:
    """Matches step text against the pattern registry.

    The first pattern that matches (buckets in registry order, patterns in
    priority order) wins. Nothing matching is not an error: the step falls
    back to a generic ``act`` descriptor carrying the raw text.
    """

    def __init__(self, registry: PatternRegistry):
        self.registry = registry

    def translate(self, step_text: str, context: ExecutionContext | None = None) -> ActionDescriptor:
        original = (step_text or "").strip()
        if not original:
            return self._fallback(original, original, {}, [], invalid_reason="empty step")

        variables: Mapping[str, str] = context.variables if context else {}
        resolved_text, captured, unresolved = resolve_placeholders(original, variables)
        if unresolved:
            logger.debug("Unresolved placeholders in '%s': %s", original, ", ".join(unresolved))

        for kind in self.registry.kinds():
            for pattern in self.registry.patterns_for_type(kind):
                match = pattern.regex.search(resolved_text)
                if match:
                    return self._from_match(pattern, match, original, resolved_text, captured, unresolved)

        return self._fallback(original, resolved_text, captured, unresolved)

    def _from_match(
        self,
        pattern: Pattern,
        match,
        original: str,
        resolved_text: str,
        captured: dict[str, str],
        unresolved: list[str],
    ) -> ActionDescriptor:
        params = _build_params(match, pattern.groups)

        if pattern.kind == ActionKind.GOTO and params.get("url"):
            cleaned = sanitize_url(params["url"])
            if cleaned != params["url"]:
                logger.debug("Sanitized URL '%s' -> '%s'", params["url"], cleaned)
            params["url"] = cleaned

        generated_code = None
        if pattern.engine == Engine.RULES and pattern.template:
            generated_code = render_template(
                pattern.template,
                self._template_values(params, captured, original, resolved_text),
                quote=shlex.quote,
            )

        logger.debug("Step '%s' matched %s pattern '%s'", original, pattern.kind, pattern.name)
        return ActionDescriptor(
            kind=pattern.kind,
            original_text=original,
            resolved_text=resolved_text,
            params=params,
            captured_variables=captured,
            unresolved_placeholders=unresolved,
            matched_pattern_name=pattern.name,
            matched_pattern_description=pattern.description,
            matched_pattern_source=pattern.source,
            is_builtin=pattern.is_builtin,
            priority=pattern.priority,
            engine=pattern.engine,
            generated_code=generated_code,
        )

    @staticmethod
    def _template_values(
        params: dict[str, str], captured: dict[str, str], original: str, resolved_text: str,
    ) -> dict[str, Any]:
        values: dict[str, Any] = dict(captured)
        values.update(params)
        values.setdefault("original_text", original)
        values.setdefault("text", resolved_text)
        return values

    @staticmethod
    def _fallback(
        original: str,
        resolved_text: str,
        captured: dict[str, str],
        unresolved: list[str],
        invalid_reason: str | None = None,
    ) -> ActionDescriptor:
        return ActionDescriptor(
            kind=ActionKind.ACT,
            original_text=original,
            resolved_text=resolved_text,
            params={"raw": resolved_text},
            captured_variables=captured,
            unresolved_placeholders=unresolved,
            matched_pattern_name=FALLBACK_PATTERN_NAME,
            matched_pattern_description="默认回退到直接执行",
            is_builtin=True,
            priority=0,
            engine=Engine.DIRECT,
            invalid=invalid_reason is not None,
            invalid_reason=invalid_reason,
        )

    # ------------------------------------------------------------------
    # Validation and description
    # ------------------------------------------------------------------

    @staticmethod
    def validate(descriptor: ActionDescriptor) -> bool:
        if descriptor.invalid:
            return False
        params = descriptor.params
        kind = descriptor.kind
        if kind == ActionKind.GOTO:
            return bool(params.get("url")) or navigation_keyword(params.get("action")) is not None
        if kind in (ActionKind.EXTRACT, ActionKind.OBSERVE):
            return bool(params.get("target", "").strip())
        if kind == ActionKind.AGENT:
            return bool(params.get("instruction", "").strip())
        if kind in (ActionKind.ACT, ActionKind.TEMPLATE):
            raw = params.get("raw") or descriptor.resolved_text
            return bool(raw.strip())
        logger.warning("Unknown action type: %s", kind)
        return False

    @classmethod
    def ensure_valid(cls, descriptor: ActionDescriptor) -> ActionDescriptor:
        """Raise :class:`InvalidDescriptor` unless the descriptor validates."""
        if not cls.validate(descriptor):
            reason = descriptor.invalid_reason or f"missing required parameters for '{descriptor.kind}'"
            raise InvalidDescriptor(
                f"Invalid step configuration ({reason}): "
                f"type={descriptor.kind} pattern={descriptor.matched_pattern_name} "
                f"params={descriptor.params}",
                descriptor=descriptor,
            )
        return descriptor

    @staticmethod
    def describe(descriptor: ActionDescriptor) -> str:
        """One-line human description used in logs and the debugger."""
        params = descriptor.params
        match descriptor.kind:
            case ActionKind.GOTO:
                keyword = navigation_keyword(params.get("action"))
                if keyword == "refresh":
                    return "Refresh page"
                if keyword == "back":
                    return "Go back"
                if params.get("url"):
                    return f"Navigate to: {params['url']}"
                return f"Navigate: {params}"
            case ActionKind.EXTRACT:
                target = params.get("target", "")
                variable = params.get("variable")
                return f"Extract: {target}" + (f" -> {variable}" if variable else "")
            case ActionKind.OBSERVE:
                return f"Observe: {params.get('target', '')}"
            case ActionKind.AGENT:
                return f"Agent task: {params.get('instruction', '')}"
            case ActionKind.TEMPLATE:
                return f"Run script: {descriptor.matched_pattern_name}"
            case _:
                if params.get("raw"):
                    return f"Act: {params['raw']}"
                return f"Act: {descriptor.resolved_text}"

    def explain(self, step_text: str, context: ExecutionContext | None = None) -> dict[str, Any]:
        """Translate, validate and describe a step in one go (for the CLI)."""
        descriptor = self.translate(step_text, context)
        return {
            "descriptor": descriptor,
            "valid": self.validate(descriptor),
            "description": self.describe(descriptor),
        }
