"""``%NAME%`` placeholder handling for step text."""

from __future__ import annotations

import re
from typing import Mapping

PLACEHOLDER_RE = re.compile(r"%(\w+)%")


def find_placeholders(text: str) -> list[str]:
    """Placeholder names in order of first appearance, without duplicates."""
    seen: dict[str, None] = {}
    for name in PLACEHOLDER_RE.findall(text):
        seen.setdefault(name, None)
    return list(seen)


def resolve_placeholders(text: str, variables: Mapping[str, str]) -> tuple[str, dict[str, str], list[str]]:
    """Substitute resolvable placeholders.

    Returns ``(resolved_text, resolved, unresolved)``. Empty values count as
    unresolved and the literal ``%NAME%`` stays in the text.
    """
    resolved: dict[str, str] = {}
    unresolved: list[str] = []
    for name in find_placeholders(text):
        value = variables.get(name)
        if isinstance(value, str) and value:
            resolved[name] = value
        else:
            unresolved.append(name)

    def _replacer(match: re.Match) -> str:
        return resolved.get(match.group(1), match.group(0))

    return PLACEHOLDER_RE.sub(_replacer, text), resolved, unresolved
