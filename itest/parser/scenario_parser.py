"""Scenario parser — turns scenario text into test cases and steps."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from itest.models.scenario import StepInfo, TestCase

logger = logging.getLogger(__name__)

CASE_PREFIX = "## "
COMMENT_PREFIX = "# "
DEFAULT_WORKFLOW_ID = "shared-actions"

# Inline comments need whitespace on both sides of '#' so URL fragments survive.
_INLINE_COMMENT_RE = re.compile(r"\s+#\s+")


def workflow_id_for_file(path: Path | str) -> str:
    """``tests/scenarios/Login.txt`` -> ``login-flow``."""
    return f"{Path(path).stem.lower()}-flow"


def parse_step_line(line: str) -> tuple[Optional[str], Optional[str]]:
    """Split a step line into ``(action, inline comment)``.

    Returns ``(None, None)`` for comment-only lines.
    """
    text = line.strip()
    if not text or text.startswith("#"):
        return None, None
    parts = _INLINE_COMMENT_RE.split(text, maxsplit=1)
    action = parts[0].strip()
    comment = parts[1].strip() if len(parts) > 1 else None
    return (action or None), (comment or None)


def parse_scenario_text(text: str, workflow_id: str = DEFAULT_WORKFLOW_ID) -> list[TestCase]:
    cases: list[TestCase] = []
    current: Optional[TestCase] = None
    pending_comment: Optional[str] = None

    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue

        if line.startswith(CASE_PREFIX):
            current = TestCase(name=line[len(CASE_PREFIX):].strip())
            cases.append(current)
            pending_comment = None
            continue

        if current is None:
            logger.debug("Ignoring line %d outside any test case: %s", number, line)
            continue

        if line.startswith(COMMENT_PREFIX):
            pending_comment = line[len(COMMENT_PREFIX):].strip()
            current.comments.append(pending_comment)
            continue

        action, inline_comment = parse_step_line(line)
        if action is None:
            continue
        current.steps.append(StepInfo(
            action=action,
            comment=inline_comment or pending_comment,
            workflow_id=workflow_id,
        ))
        pending_comment = None

    logger.debug("Parsed %d test cases (%d steps) for workflow %s",
                 len(cases), sum(len(c.steps) for c in cases), workflow_id)
    return cases


def parse_scenario_file(path: Path | str, workflow_id: str | None = None) -> list[TestCase]:
    """Parse a scenario file; the workflow id defaults to one derived from its name."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        text = f.read()
    return parse_scenario_text(text, workflow_id or workflow_id_for_file(path))
