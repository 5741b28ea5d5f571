"""Pattern registry — merges builtin and custom rules into one ordered table."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Iterator, Mapping, Optional, Sequence

import yaml
from pydantic import ValidationError

from itest.models.descriptor import Engine
from itest.models.patterns import Pattern, PatternDefinition, PatternOrigin, RegistryStats
from itest.patterns.builtin import BUILTIN_PATTERNS

logger = logging.getLogger(__name__)

PatternTable = Mapping[str, Sequence[PatternDefinition]]


def compile_matcher(source: str) -> re.Pattern:
    """Compile a rule source, anchoring it at both ends when the author did not."""
    if not source.startswith("^"):
        source = "^" + source
    if not source.endswith("$"):
        source = source + "$"
    return re.compile(source)


def _default_engine(definition: PatternDefinition) -> str:
    if definition.engine:
        if definition.engine not in Engine.ALL:
            raise ValueError(f"unknown engine '{definition.engine}'")
        return definition.engine
    return Engine.RULES


def compile_pattern(kind: str, definition: PatternDefinition, origin: str) -> Pattern:
    return Pattern(
        name=definition.name,
        kind=kind,
        regex=compile_matcher(definition.pattern),
        groups=tuple(definition.groups),
        priority=definition.priority,
        origin=origin,
        description=definition.description,
        template=definition.template,
        engine=_default_engine(definition),
    )


def _compile_bucket(kind: str, definitions: Sequence[PatternDefinition], origin: str) -> list[Pattern]:
    compiled = []
    for definition in definitions:
        try:
            compiled.append(compile_pattern(kind, definition, origin))
        except (re.error, ValueError) as e:
            logger.warning("Skipping %s pattern '%s' (%s): %s", origin, definition.name, kind, e)
    return compiled


def merge_patterns(builtin: PatternTable, custom: PatternTable) -> dict[str, list[Pattern]]:
    """Merge builtin and custom tables into priority-ordered buckets.

    Builtin kinds keep their order; kinds only known to the custom table are
    appended after them. Within each bucket builtin rules precede custom ones
    before a stable sort on descending priority, so equal priorities resolve
    builtin-first, then in declaration order.
    """
    kinds = list(builtin.keys())
    kinds.extend(k for k in custom.keys() if k not in builtin)

    merged: dict[str, list[Pattern]] = {}
    for kind in kinds:
        patterns = _compile_bucket(kind, builtin.get(kind, []), PatternOrigin.BUILTIN)
        patterns += _compile_bucket(kind, custom.get(kind, []), PatternOrigin.CUSTOM)
        merged[kind] = sorted(patterns, key=lambda p: -p.priority)
    return merged


def parse_custom_patterns(data: object) -> dict[str, list[PatternDefinition]]:
    """Turn a loaded config document into pattern definitions, skipping bad entries."""
    if not isinstance(data, dict):
        raise ValueError("pattern config must be a mapping")
    section = data.get("patterns") or {}
    if not isinstance(section, dict):
        raise ValueError("'patterns' must map action types to lists")

    table: dict[str, list[PatternDefinition]] = {}
    for kind, entries in section.items():
        definitions = []
        for entry in entries or []:
            try:
                definitions.append(PatternDefinition.model_validate(entry))
            except ValidationError as e:
                name = entry.get("name", "?") if isinstance(entry, dict) else "?"
                logger.warning("Skipping invalid custom pattern '%s' (%s): %s", name, kind, e)
        table[str(kind)] = definitions
    return table


def load_custom_patterns(path: Optional[str | Path]) -> dict[str, list[PatternDefinition]]:
    """Load user-supplied patterns from a YAML or JSON file.

    A missing file is not an error: the registry runs on builtins only. A file
    that cannot be parsed is logged and ignored the same way.
    """
    if not path:
        return {}
    path = Path(path)
    if not path.exists():
        logger.info("No custom pattern config at %s, using builtin patterns", path)
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        table = parse_custom_patterns(data)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error("Failed to load custom patterns from %s: %s", path, e)
        return {}

    logger.info("Loaded custom patterns: %d categories", len(table))
    return table


class PatternRegistry:
    """Ordered, read-only rule table used by the translator."""

    def __init__(self, patterns: dict[str, list[Pattern]]):
        self._patterns = patterns

    @classmethod
    def build(
        cls,
        builtin: PatternTable | None = None,
        custom: PatternTable | None = None,
    ) -> "PatternRegistry":
        return cls(merge_patterns(BUILTIN_PATTERNS if builtin is None else builtin, custom or {}))

    @classmethod
    def from_config_file(cls, path: Optional[str | Path]) -> "PatternRegistry":
        registry = cls.build(custom=load_custom_patterns(path))
        stats = registry.stats()
        logger.debug("Pattern registry ready: %d patterns (%d builtin, %d custom)",
                     stats.total, stats.builtin, stats.custom)
        return registry

    def kinds(self) -> list[str]:
        return list(self._patterns.keys())

    def patterns_for_type(self, kind: str) -> list[Pattern]:
        return list(self._patterns.get(kind, []))

    def iter_patterns(self) -> Iterator[Pattern]:
        for patterns in self._patterns.values():
            yield from patterns

    def find(self, name: str) -> Optional[Pattern]:
        for pattern in self.iter_patterns():
            if pattern.name == name:
                return pattern
        return None

    def stats(self) -> RegistryStats:
        stats = RegistryStats()
        for kind, patterns in self._patterns.items():
            stats.per_type[kind] = len(patterns)
            stats.total += len(patterns)
            for p in patterns:
                if p.is_builtin:
                    stats.builtin += 1
                else:
                    stats.custom += 1
        return stats
