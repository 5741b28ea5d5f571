"""Pattern data structures — rule definitions consumed by the translator."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class PatternOrigin:
    BUILTIN = "builtin"
    CUSTOM = "custom"


class PatternDefinition(BaseModel):
    """One rule as written by an author (builtin table or custom config file)."""
    name: str
    pattern: str = Field(validation_alias=AliasChoices("pattern", "matcher", "matcherSource"))
    groups: list[str] = Field(default_factory=list)
    priority: int = 0
    description: str = ""
    template: Optional[str] = None
    engine: Optional[str] = None  # rules, agent, direct


@dataclass(frozen=True)
class Pattern:
    """A compiled rule, bound to the action-type bucket it lives in."""
    name: str
    kind: str
    regex: re.Pattern
    groups: tuple[str, ...] = ()
    priority: int = 0
    origin: str = PatternOrigin.BUILTIN
    description: str = ""
    template: Optional[str] = None
    engine: str = "rules"

    @property
    def is_builtin(self) -> bool:
        return self.origin == PatternOrigin.BUILTIN

    @property
    def source(self) -> str:
        return self.regex.pattern


@dataclass
class RegistryStats:
    total: int = 0
    per_type: dict[str, int] = field(default_factory=dict)
    builtin: int = 0
    custom: int = 0
