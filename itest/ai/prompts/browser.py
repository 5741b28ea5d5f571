"""System prompts for AI-driven browser steps (act, extract, observe, agent)."""

from __future__ import annotations

import json
from typing import Any

_ACTION_FIELDS = """Each action is {"action_type": "...", "element_index": 3, "selector": null, "value": null, "description": "..."}:
- action_type: one of "click", "fill", "select", "hover", "scroll", "wait", "keyboard", "clear", "screenshot"
- element_index: index from the element catalogue, or null
- selector: CSS selector, only when no catalogue entry fits
- value: text to type, option to select, key to press, milliseconds to wait, or screenshot file name
- description: short human description of the action"""

ACT_SYSTEM_PROMPT = f"""You drive a web browser for an automated test. You receive one test step written in natural language (often Chinese), the page URL and title, and a numbered catalogue of interactive elements.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{{"actions": [...], "reasoning": "brief explanation"}}

{_ACTION_FIELDS}

Use the fewest actions that perform the step. If the step cannot be performed on this page, return an empty "actions" list and explain why in "reasoning"."""

EXTRACT_SYSTEM_PROMPT = """You extract data from a web page for an automated test. You receive what to extract, a shape hint, and the visible page text.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{"data": ..., "found": true}

Shape hints:
- "list": data is a JSON array (of strings or objects for tables)
- "text": data is a single string
- "links": data is an array of {"text": "...", "href": "..."}
- "auto": choose the most natural JSON value

If nothing matches, return {"data": null, "found": false}."""

OBSERVE_SYSTEM_PROMPT = """You locate elements on a web page for an automated test. You receive a description of what to find and a numbered catalogue of interactive elements.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{"elements": [{"element_index": 3, "description": "what this element is"}]}

Return an empty list when nothing matches. Never invent indexes that are not in the catalogue."""

AGENT_SYSTEM_PROMPT = f"""You are an autonomous browser agent completing a multi-step task for an automated test. Each turn you receive the task, the steps taken so far, the page URL and title, and a numbered catalogue of interactive elements.

CRITICAL: Return ONLY valid JSON. No markdown fences, no comments, no text before or after the JSON object.

Return exactly this JSON structure:

{{"done": false, "actions": [...], "result": null, "error": null, "reasoning": "brief explanation"}}

{_ACTION_FIELDS}

Set "done" to true with a short "result" once the task is complete. If the task cannot be completed, set "done" to true and describe the problem in "error"."""


def format_catalogue(elements: list[dict[str, Any]], limit: int = 150) -> str:
    lines = []
    for i, el in enumerate(elements[:limit]):
        text = (el.get("text") or "").replace("\n", " ")[:80]
        label = el.get("label") or ""
        lines.append(f"[{i}] <{el.get('tag', '')}> type={el.get('type', '')} "
                     f"selector={el.get('selector', '')} label={label!r} text={text!r}")
    if len(elements) > limit:
        lines.append(f"... {len(elements) - limit} more elements omitted")
    return "\n".join(lines) if lines else "(no interactive elements)"


def build_act_prompt(
    instruction: str,
    url: str,
    title: str,
    elements: list[dict[str, Any]],
    variables: dict[str, str] | None = None,
) -> str:
    parts = [
        f"Step: {instruction}",
        f"Page: {title} ({url})",
    ]
    if variables:
        parts.append(f"Variables: {json.dumps(variables, ensure_ascii=False)}")
    parts.append(f"Elements:\n{format_catalogue(elements)}")
    parts.append("Return your actions as a single JSON object.")
    return "\n\n".join(parts)


def build_extract_prompt(target: str, shape_hint: str, url: str, page_text: str) -> str:
    return (
        f"Extract: {target}\n"
        f"Shape hint: {shape_hint}\n"
        f"Page: {url}\n\n"
        f"Page text:\n{page_text[:8000]}\n\n"
        f"Return the extracted data as a single JSON object."
    )


def build_observe_prompt(target: str, url: str, elements: list[dict[str, Any]]) -> str:
    return (
        f"Find: {target}\n"
        f"Page: {url}\n\n"
        f"Elements:\n{format_catalogue(elements)}\n\n"
        f"Return the matching elements as a single JSON object."
    )


def build_agent_prompt(
    instruction: str,
    history: list[str],
    url: str,
    title: str,
    elements: list[dict[str, Any]],
) -> str:
    done = "\n".join(f"{i}. {h}" for i, h in enumerate(history, start=1)) or "(none yet)"
    return (
        f"Task: {instruction}\n\n"
        f"Steps so far:\n{done}\n\n"
        f"Page: {title} ({url})\n\n"
        f"Elements:\n{format_catalogue(elements)}\n\n"
        f"Return your next move as a single JSON object."
    )
