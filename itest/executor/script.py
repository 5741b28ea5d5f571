"""Scripted steps — a small, closed interpreter for rendered rule templates.

A script is one operation per line::

    extract "用户名" -> actual
    expect_contains $actual "张三"

Words follow POSIX shell quoting, so quote arguments that contain spaces.
``-> name`` binds the operation's result and an unquoted ``$name`` reads a
binding; quoted text is always literal. Rule templates get their
``${...}`` values shell-quoted by the translator. Blank lines and ``#``
comments are skipped. Only the operations registered in
``ScriptInterpreter`` exist; nothing is ever evaluated as Python.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from itest.backend.session import (
    AGENT_MAX_STEPS,
    DEFAULT_ACT_RETRIES,
    DEFAULT_ACT_TIMEOUT_MS,
    Session,
)

from .errors import ScriptAssertionError, ScriptError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BindingRef:
    """An unquoted ``$name`` argument."""
    name: str


@dataclass
class ScriptLine:
    number: int
    op: str
    args: list[str | BindingRef]
    bind: str | None = None


@dataclass
class ScriptResult:
    operations: int = 0
    bindings: dict[str, Any] = field(default_factory=dict)
    last: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"operations": self.operations, "bindings": self.bindings, "last": self.last}


# One piece of a word: whitespace, a '...' or "..." section, or a bare run.
_WORD_PART_RE = re.compile(r"""(\s+)|'([^']*)'|"((?:[^"\\]|\\.)*)"|([^\s'"]+)""")
_DOUBLE_QUOTE_ESCAPE_RE = re.compile(r'\\(["\\$`])')
_BINDING_NAME_RE = re.compile(r"^\$(\w+)$")


def split_words(text: str) -> list[tuple[str, bool]]:
    """Split a line with POSIX shell quoting into ``(word, was_bare)`` pairs.

    ``was_bare`` is False when any part of the word was quoted, which is what
    keeps quoted text such as ``'$5'`` from being read as a binding.
    """
    words: list[tuple[str, bool]] = []
    parts: list[str] = []
    bare = True
    pos = 0
    while pos < len(text):
        match = _WORD_PART_RE.match(text, pos)
        if match is None:
            raise ValueError("No closing quotation")
        pos = match.end()
        space, single, double, plain = match.groups()
        if space is not None:
            if parts:
                words.append(("".join(parts), bare))
            parts, bare = [], True
        elif plain is not None:
            parts.append(plain)
        else:
            parts.append(single if single is not None else _DOUBLE_QUOTE_ESCAPE_RE.sub(r"\1", double))
            bare = False
    if parts:
        words.append(("".join(parts), bare))
    return words


def parse_script(source: str) -> list[ScriptLine]:
    lines = []
    for number, raw in enumerate(source.splitlines(), start=1):
        text = raw.strip()
        if not text or text.startswith("#"):
            continue
        try:
            words = split_words(text)
        except ValueError as e:
            raise ScriptError(f"line {number}: {e}") from e
        bind = None
        if len(words) >= 2 and words[-2] == ("->", True):
            bind = words[-1][0]
            words = words[:-2]
        if not words:
            raise ScriptError(f"line {number}: missing operation")
        args: list[str | BindingRef] = []
        for word, was_bare in words[1:]:
            ref = _BINDING_NAME_RE.match(word) if was_bare else None
            args.append(BindingRef(ref.group(1)) if ref else word)
        lines.append(ScriptLine(number=number, op=words[0][0], args=args, bind=bind))
    return lines


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


class ScriptInterpreter:
    """Runs a parsed script against a session with assertion helpers."""

    def __init__(self, session: Session, variables: dict[str, str] | None = None):
        self.session = session
        self.bindings: dict[str, Any] = dict(variables or {})
        self._ops: dict[str, tuple[int, int, Callable[..., Awaitable[Any]]]] = {
            # name: (min args, max args, handler)
            "goto": (1, 1, self._goto),
            "back": (0, 0, self._back),
            "reload": (0, 0, self._reload),
            "title": (0, 0, self._title),
            "act": (1, 1, self._act),
            "extract": (1, 2, self._extract),
            "observe": (1, 1, self._observe),
            "agent": (1, 1, self._agent),
            "wait": (1, 1, self._wait),
            "expect_equal": (2, 2, self._expect_equal),
            "expect_contains": (2, 2, self._expect_contains),
            "expect_not_empty": (1, 1, self._expect_not_empty),
        }

    async def run(self, source: str) -> ScriptResult:
        result = ScriptResult()
        for line in parse_script(source):
            entry = self._ops.get(line.op)
            if entry is None:
                raise ScriptError(f"line {line.number}: unknown operation '{line.op}'")
            min_args, max_args, handler = entry
            if not min_args <= len(line.args) <= max_args:
                raise ScriptError(
                    f"line {line.number}: '{line.op}' takes {min_args}-{max_args} arguments, "
                    f"got {len(line.args)}"
                )
            args = [self._resolve(a) for a in line.args]
            logger.debug("Script line %d: %s %s", line.number, line.op, args)
            value = await handler(*args)
            result.operations += 1
            result.last = value
            if line.bind:
                self.bindings[line.bind] = value
                result.bindings[line.bind] = value
        return result

    def _resolve(self, arg: str | BindingRef) -> Any:
        if isinstance(arg, BindingRef):
            if arg.name not in self.bindings:
                raise ScriptError(f"unknown binding '${arg.name}'")
            return self.bindings[arg.name]
        return arg

    # -- backend operations ------------------------------------------------

    async def _goto(self, url: str) -> str:
        await self.session.navigate(url)
        return url

    async def _back(self) -> None:
        await self.session.go_back()

    async def _reload(self) -> None:
        await self.session.reload()

    async def _title(self) -> str:
        return await self.session.title()

    async def _act(self, text: str) -> Any:
        return await self.session.act(
            _as_text(text), timeout=DEFAULT_ACT_TIMEOUT_MS, retries=DEFAULT_ACT_RETRIES,
        )

    async def _extract(self, target: str, shape_hint: str = "auto") -> Any:
        return await self.session.extract(_as_text(target), shape_hint)

    async def _observe(self, target: str) -> list[Any]:
        return await self.session.observe(_as_text(target))

    async def _agent(self, instruction: str) -> Any:
        return await self.session.run_agent_task(
            _as_text(instruction), max_steps=AGENT_MAX_STEPS, feedback=False,
        )

    async def _wait(self, ms: str) -> None:
        try:
            delay = int(ms)
        except (TypeError, ValueError) as e:
            raise ScriptError(f"wait expects milliseconds, got {ms!r}") from e
        await asyncio.sleep(delay / 1000)

    # -- assertion helpers -------------------------------------------------

    async def _expect_equal(self, actual: Any, expected: Any) -> bool:
        if _as_text(actual) != _as_text(expected):
            raise ScriptAssertionError(f"expected {_as_text(actual)} to equal {_as_text(expected)}")
        return True

    async def _expect_contains(self, haystack: Any, needle: Any) -> bool:
        if _as_text(needle) not in _as_text(haystack):
            raise ScriptAssertionError(f"expected {_as_text(haystack)} to contain {_as_text(needle)}")
        return True

    async def _expect_not_empty(self, value: Any) -> bool:
        if value is None or value == "" or value == [] or value == {}:
            raise ScriptAssertionError("expected a non-empty value")
        return True
