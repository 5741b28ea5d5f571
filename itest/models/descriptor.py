"""Action descriptor — the typed form of one step after translation."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ActionKind:
    GOTO = "goto"
    EXTRACT = "extract"
    OBSERVE = "observe"
    AGENT = "agent"
    ACT = "act"
    TEMPLATE = "template"

    ALL = (GOTO, EXTRACT, OBSERVE, AGENT, ACT, TEMPLATE)


class Engine:
    RULES = "rules"
    AGENT = "agent"
    DIRECT = "direct"

    ALL = (RULES, AGENT, DIRECT)


FALLBACK_PATTERN_NAME = "default_fallback"


class ActionDescriptor(BaseModel):
    kind: str  # goto, extract, observe, agent, act, template
    original_text: str
    resolved_text: str
    params: dict[str, str] = Field(default_factory=dict)
    captured_variables: dict[str, str] = Field(default_factory=dict)
    unresolved_placeholders: list[str] = Field(default_factory=list)
    matched_pattern_name: Optional[str] = None
    matched_pattern_description: Optional[str] = None
    matched_pattern_source: Optional[str] = None  # regex source of the rule
    is_builtin: bool = True
    priority: int = 0
    engine: str = Engine.DIRECT  # rules, agent, direct
    generated_code: Optional[str] = None
    invalid: bool = False
    invalid_reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.matched_pattern_name == FALLBACK_PATTERN_NAME
