"""Test-case runner — executes parsed cases step by step, fail-fast."""

from __future__ import annotations

import asyncio
import logging
import time

from itest.backend.session import SessionProvider
from itest.models.execution import CaseResult, CaseStatus, ExecutionRecord, RunSummary
from itest.models.scenario import StepInfo, TestCase
from itest.translator.translator import Translator

from .context import ExecutionContext
from .dispatcher import Dispatcher
from .history import utc_timestamp

logger = logging.getLogger(__name__)


class StepExecutor:
    """Session lookup, translation and dispatch for a single step."""

    def __init__(self, translator: Translator, dispatcher: Dispatcher, provider: SessionProvider):
        self.translator = translator
        self.dispatcher = dispatcher
        self.provider = provider

    async def execute_step(self, step: StepInfo, context: ExecutionContext) -> ExecutionRecord:
        # SessionUnavailable is not a step failure; let it reach the caller.
        session = await self.provider.get_session(step.workflow_id)
        descriptor = self.translator.translate(step.action, context)
        logger.debug("  %s", self.translator.describe(descriptor))
        return await self.dispatcher.execute(descriptor, session, step.workflow_id, context)


class TestCaseRunner:
    __test__ = False

    def __init__(self, executor: StepExecutor):
        self.executor = executor
        self.results: list[CaseResult] = []

    async def run_case(self, case: TestCase, context: ExecutionContext) -> CaseResult:
        result = CaseResult(name=case.name, status=CaseStatus.RUNNING, start_time=utc_timestamp())
        start = time.time()
        logger.info("Running test case: %s (%d steps)", case.name, len(case.steps))

        await self._run_steps(case, context, result)

        result.end_time = utc_timestamp()
        result.duration_ms = int((time.time() - start) * 1000)
        logger.info("[%s] %s (%.1fs)", result.status.upper(), case.name, result.duration_ms / 1000)
        self.results.append(result)
        return result

    async def _run_steps(self, case: TestCase, context: ExecutionContext, result: CaseResult) -> None:
        for index, step in enumerate(case.steps, start=1):
            logger.info("  Step %d/%d: %s", index, len(case.steps), step.action)
            if step.comment:
                logger.debug("    # %s", step.comment)
            record = await self.executor.execute_step(step, context)
            result.step_records.append(record)
            if not record.success:
                result.status = CaseStatus.FAILED
                result.first_error = record.error_message
                result.failed_action = step.action
                logger.warning("Test case '%s' failed at step %d: %s", case.name, index, step.action)
                return
        result.status = CaseStatus.PASSED
        result.passed = True

    async def run_cases(
        self,
        cases: list[TestCase],
        context: ExecutionContext,
        max_parallel: int = 1,
    ) -> list[CaseResult]:
        """Run cases concurrently, bounded by ``max_parallel``; results keep input order."""
        semaphore = asyncio.Semaphore(max(1, max_parallel))

        async def _run_one(case: TestCase) -> CaseResult:
            async with semaphore:
                return await self.run_case(case, context)

        return list(await asyncio.gather(*(_run_one(c) for c in cases)))

    def summary(self) -> RunSummary:
        total = len(self.results)
        passed = sum(1 for r in self.results if r.passed)
        total_steps = sum(len(r.step_records) for r in self.results)
        passed_steps = sum(1 for r in self.results for rec in r.step_records if rec.success)
        return RunSummary(
            total_cases=total,
            passed_cases=passed,
            failed_cases=total - passed,
            total_steps=total_steps,
            passed_steps=passed_steps,
            success_rate=round(passed / total * 100, 1) if total else 0.0,
        )

    def reset(self) -> None:
        self.results.clear()
