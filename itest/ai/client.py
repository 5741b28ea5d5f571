"""Claude client for the decisions a browser session cannot make by rule.

``PlaywrightSession`` hands this client a page snapshot (URL, title, the
numbered element catalogue) plus the step text and expects a JSON decision
back: which element to act on, what to extract, or whether an agent task is
done. Replies are parsed leniently because models wrap JSON in fences and
prose. Every exchange is written to the run's ``debug`` directory so a failed
step can be replayed by reading what the model saw.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Optional

import anthropic

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-opus-4-6"
# Decisions are small JSON objects; a page catalogue is the bulk of the prompt.
DEFAULT_DECISION_TOKENS = 4000
REQUEST_TIMEOUT_SECONDS = 120.0

# Points at <report_output_dir>/debug once the orchestrator has started a run
_debug_dir: Path | None = None


def set_debug_dir(path: Path) -> None:
    """Send decision exchange logs to ``path``."""
    global _debug_dir
    _debug_dir = path
    _debug_dir.mkdir(parents=True, exist_ok=True)


def _get_debug_dir() -> Path:
    global _debug_dir
    if _debug_dir is None:
        _debug_dir = Path("./itest-reports") / "debug"
    _debug_dir.mkdir(parents=True, exist_ok=True)
    return _debug_dir


_FENCE_RE = re.compile(
    r'^```(?:json|javascript|)?\s*\n(.*?)\n```\s*$',
    re.DOTALL | re.MULTILINE,
)
_LINE_COMMENT_RE = re.compile(r'(?<=[\s,\]\}])//[^\n]*|^//[^\n]*', re.MULTILINE)
_TRAILING_COMMA_RE = re.compile(r',\s*([}\]])')


def _unwrap_reply(text: str) -> str:
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        logger.debug("Decision reply was fenced; unwrapping")
        text = match.group(1).strip()
    if text.startswith("```") or text.endswith("```"):
        text = text.strip("`").strip()
    return text


def _relax_reply(text: str) -> str:
    """Drop ``//`` comments and trailing commas, then keep the outermost object."""
    text = _LINE_COMMENT_RE.sub('', text)
    text = _TRAILING_COMMA_RE.sub(r'\1', text)
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    return text


class AIClient:
    """Sends browser decision prompts to Claude.

    The Anthropic SDK call is blocking; sessions run it through
    ``asyncio.to_thread``. ``call_count`` numbers the exchange logs.
    """

    def __init__(self, model: str = DEFAULT_MODEL, max_tokens: int = DEFAULT_DECISION_TOKENS):
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY is not set; steps that fall back to the AI "
                "(free-text act, extract, observe, agent tasks) cannot run."
            )
        self.client = anthropic.Anthropic(api_key=api_key, timeout=REQUEST_TIMEOUT_SECONDS)
        self.model = model
        self.max_tokens = max_tokens
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
    ) -> str:
        """Ask for one decision and return the raw reply text."""
        self._call_count += 1
        call_number = self._call_count
        tokens = max_tokens or self.max_tokens
        logger.debug("Decision call #%d to %s (max_tokens=%d, prompt=%d chars)",
                     call_number, self.model, tokens, len(user_message))

        started = time.time()
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
        except anthropic.APIError as e:
            logger.error("Decision call #%d failed: %s", call_number, e)
            self._save_exchange_log(call_number, system_prompt, user_message, "", str(e))
            raise

        reply = response.content[0].text
        logger.debug("Decision call #%d answered in %.1fs", call_number, time.time() - started)
        if response.stop_reason == "max_tokens":
            logger.warning("Decision reply #%d truncated at max_tokens=%d; JSON may be incomplete",
                           call_number, tokens)
        self._save_exchange_log(call_number, system_prompt, user_message, reply, None)
        return reply

    def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
    ) -> dict[str, Any]:
        """Ask for one decision and parse it as a JSON object."""
        return self._parse_json_response(
            self.complete(system_prompt, user_message, max_tokens, temperature)
        )

    @staticmethod
    def _parse_json_response(text: str) -> dict[str, Any]:
        text = _unwrap_reply(text)
        try:
            return json.loads(text, strict=False)
        except json.JSONDecodeError:
            pass

        try:
            return json.loads(_relax_reply(text), strict=False)
        except json.JSONDecodeError as e:
            logger.error("Decision reply is not JSON: %s", e)
            logger.debug("Reply started with: %s", text[:500])
            raise ValueError(f"AI decision reply is invalid JSON: {e}") from e

    @staticmethod
    def _save_exchange_log(
        call_number: int,
        system_prompt: str,
        user_message: str,
        reply: str,
        error: str | None,
    ) -> None:
        """Write one decision exchange to ``ai_call_<timestamp>_<nnn>.log``."""
        sections = [
            f"=== DECISION CALL #{call_number} at {time.strftime('%Y-%m-%d %H:%M:%S')} ===",
            f"=== SYSTEM PROMPT ({len(system_prompt)} chars) ===\n{system_prompt}",
            f"=== PAGE AND STEP ({len(user_message)} chars) ===\n{user_message}",
            f"=== REPLY ({len(reply)} chars) ===\n{reply or '(empty)'}",
        ]
        if error:
            sections.append(f"=== ERROR ===\n{error}")
        log_name = f"ai_call_{time.strftime('%Y%m%d_%H%M%S')}_{call_number:03d}.log"
        try:
            log_file = _get_debug_dir() / log_name
            log_file.write_text("\n\n".join(sections) + "\n", encoding="utf-8")
        except OSError as log_err:
            logger.warning("Could not write decision log %s: %s", log_name, log_err)
            return
        logger.debug("Decision exchange #%d logged to %s", call_number, log_file)
