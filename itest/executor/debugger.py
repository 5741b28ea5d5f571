"""Step debugger — an explicit state machine for stepping through one case.

States per step index ``i``:

- ``pending``  accepts ``execute``, ``skip``, ``continue`` and ``abort``
- ``failed``   accepts ``retry`` (back to ``pending``, bounded), ``skip`` and ``abort``
- ``finished`` and ``aborted`` are terminal
"""

from __future__ import annotations

import logging
from typing import Optional

from itest.models.execution import ExecutionRecord
from itest.models.scenario import StepInfo, TestCase

from .context import ExecutionContext
from .errors import ItestError
from .runner import StepExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3


class DebugState:
    PENDING = "pending"
    FAILED = "failed"
    FINISHED = "finished"
    ABORTED = "aborted"


class DebugCommandError(ItestError):
    """A command that the current debugger state does not accept."""


# Single-letter shortcuts used by the interactive prompt.
COMMAND_KEYS = {
    "e": "execute",
    "s": "skip",
    "c": "continue",
    "r": "retry",
    "q": "abort",
}


class DebugSession:
    def __init__(
        self,
        executor: StepExecutor,
        case: TestCase,
        context: ExecutionContext,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.executor = executor
        self.case = case
        self.context = context
        self.max_retries = max_retries
        self.index = 0
        self.state = DebugState.PENDING if case.steps else DebugState.FINISHED
        self.records: list[ExecutionRecord] = []
        self.skipped: list[int] = []
        self.last_record: Optional[ExecutionRecord] = None
        self._retries: dict[int, int] = {}

    # -- inspection --------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.state in (DebugState.FINISHED, DebugState.ABORTED)

    @property
    def current_step(self) -> Optional[StepInfo]:
        if self.done or self.index >= len(self.case.steps):
            return None
        return self.case.steps[self.index]

    def retries_used(self, index: int | None = None) -> int:
        return self._retries.get(self.index if index is None else index, 0)

    @property
    def can_retry(self) -> bool:
        return self.state == DebugState.FAILED and self.retries_used() < self.max_retries

    def allowed_commands(self) -> list[str]:
        if self.state == DebugState.PENDING:
            return ["execute", "skip", "continue", "abort"]
        if self.state == DebugState.FAILED:
            commands = ["skip", "abort"]
            if self.can_retry:
                commands.insert(0, "retry")
            return commands
        return []

    # -- commands ----------------------------------------------------------

    async def dispatch(self, command: str) -> Optional[ExecutionRecord]:
        """Run a command by name or single-letter shortcut."""
        name = COMMAND_KEYS.get(command.strip().lower(), command.strip().lower())
        match name:
            case "execute":
                return await self.execute()
            case "skip":
                self.skip()
                return None
            case "continue":
                return await self.continue_run()
            case "retry":
                self.retry()
                return None
            case "abort":
                self.abort()
                return None
            case _:
                raise DebugCommandError(f"Unknown debugger command: {command!r}")

    async def execute(self) -> ExecutionRecord:
        self._require(DebugState.PENDING, "execute")
        step = self.case.steps[self.index]
        record = await self.executor.execute_step(step, self.context)
        self.records.append(record)
        self.last_record = record
        if record.success:
            self._advance()
        else:
            logger.warning("Step %d failed: %s", self.index + 1, record.error_message)
            self.state = DebugState.FAILED
        return record

    async def continue_run(self) -> Optional[ExecutionRecord]:
        """Execute the remaining steps until one fails or the case ends."""
        self._require(DebugState.PENDING, "continue")
        record = None
        while self.state == DebugState.PENDING:
            record = await self.execute()
        return record

    def skip(self) -> None:
        self._require((DebugState.PENDING, DebugState.FAILED), "skip")
        logger.info("Skipping step %d: %s", self.index + 1, self.case.steps[self.index].action)
        self.skipped.append(self.index)
        self._advance()

    def retry(self) -> None:
        self._require(DebugState.FAILED, "retry")
        if not self.can_retry:
            raise DebugCommandError(
                f"Step {self.index + 1} already retried {self.max_retries} times"
            )
        self._retries[self.index] = self.retries_used() + 1
        self.state = DebugState.PENDING

    def abort(self) -> None:
        if self.done:
            raise DebugCommandError(f"Cannot abort: debugger is {self.state}")
        logger.info("Debugging of '%s' aborted at step %d", self.case.name, self.index + 1)
        self.state = DebugState.ABORTED

    # -- helpers -----------------------------------------------------------

    def _require(self, states: str | tuple[str, ...], command: str) -> None:
        allowed = (states,) if isinstance(states, str) else states
        if self.state not in allowed:
            raise DebugCommandError(f"Cannot {command}: debugger is {self.state}")

    def _advance(self) -> None:
        self.index += 1
        if self.index >= len(self.case.steps):
            self.state = DebugState.FINISHED
        else:
            self.state = DebugState.PENDING
