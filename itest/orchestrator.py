"""Orchestrator — wires config, registry, translator, dispatcher and runner."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Mapping

from itest.ai.client import AIClient, set_debug_dir
from itest.backend.playwright_backend import PlaywrightSessionProvider
from itest.backend.session import SessionProvider
from itest.executor.context import ExecutionContext
from itest.executor.debugger import DebugCommandError, DebugSession, DebugState
from itest.executor.dispatcher import Dispatcher
from itest.executor.history import HistoryStore
from itest.executor.runner import StepExecutor, TestCaseRunner
from itest.models.config import RunnerConfig
from itest.models.scenario import TestCase
from itest.parser.scenario_parser import parse_scenario_file
from itest.patterns.registry import PatternRegistry
from itest.reporter.json_report import build_report, generate_json_report
from itest.translator.translator import Translator

logger = logging.getLogger(__name__)

SCENARIO_SUFFIX = ".txt"


def collect_scenario_files(paths: list[str | Path]) -> list[Path]:
    """Expand directories to their ``*.txt`` scenario files, sorted by name."""
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(path.glob(f"*{SCENARIO_SUFFIX}")))
        elif path.exists():
            files.append(path)
        else:
            raise FileNotFoundError(f"Scenario file not found: {path}")
    return files


class Orchestrator:
    """Runs scenario files end to end and writes the report and export bundle."""

    def __init__(
        self,
        config: RunnerConfig,
        session_provider: SessionProvider | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.config = config
        self.report_dir = Path(config.report_output_dir)
        self.run_id = f"run_{uuid.uuid4().hex[:8]}"

        self.registry = PatternRegistry.from_config_file(config.patterns_file)
        self.translator = Translator(self.registry)
        self.store = HistoryStore(config.results_dir, persist=config.persist_extracted)
        self.dispatcher = Dispatcher(self.store, config)

        if session_provider is None:
            session_provider = PlaywrightSessionProvider(
                config,
                ai_client=self._make_ai_client(),
                screenshot_dir=self.report_dir / "screenshots",
            )
        self.provider = session_provider

        self.step_executor = StepExecutor(self.translator, self.dispatcher, self.provider)
        self.runner = TestCaseRunner(self.step_executor)
        self.context = ExecutionContext.from_environment(config, self.provider, environ)

    def _make_ai_client(self) -> AIClient | None:
        set_debug_dir(self.report_dir / "debug")
        try:
            return AIClient(model=self.config.ai_model, max_tokens=self.config.ai_max_tokens)
        except EnvironmentError as e:
            logger.warning("AI client unavailable: %s. act/extract/observe/agent steps will fail.", e)
            return None

    @staticmethod
    def load_cases(files: list[Path]) -> list[TestCase]:
        cases: list[TestCase] = []
        for path in files:
            parsed = parse_scenario_file(path)
            logger.info("Loaded %d test cases from %s", len(parsed), path)
            cases.extend(parsed)
        return cases

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run_files(self, paths: list[str | Path]) -> dict[str, Any]:
        """Parse, run and report every case in the given scenario files."""
        return asyncio.run(self._run(collect_scenario_files(paths)))

    async def _run(self, files: list[Path]) -> dict[str, Any]:
        start = time.time()
        started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        cases = self.load_cases(files)
        logger.info("=== Running %d test cases from %d files (run %s) ===",
                    len(cases), len(files), self.run_id)

        try:
            results = await self.runner.run_cases(
                cases, self.context, max_parallel=self.config.max_parallel_cases,
            )
        finally:
            await self.provider.close_all()
            export_path = self.store.export()

        summary = self.runner.summary()
        report = build_report(
            run_id=self.run_id,
            scenario_files=[str(f) for f in files],
            summary=summary,
            results=results,
            history_stats=self.store.stats(),
            started_at=started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        )
        report_path = generate_json_report(report, self.report_dir)

        duration = time.time() - start
        logger.info("=== Run complete: %d/%d cases passed in %.1fs ===",
                    summary.passed_cases, summary.total_cases, duration)
        return {
            "run_id": self.run_id,
            "duration": round(duration, 2),
            "summary": summary,
            "results": results,
            "reports": {"json": str(report_path), "export": str(export_path)},
        }

    # ------------------------------------------------------------------
    # Debug
    # ------------------------------------------------------------------

    def debug_file(
        self,
        path: str | Path,
        choose_command: Callable[[DebugSession], str],
        max_retries: int = 3,
    ) -> list[DebugSession]:
        """Step through a scenario file; ``choose_command`` picks each command."""
        return asyncio.run(self._debug(Path(path), choose_command, max_retries))

    async def _debug(
        self,
        path: Path,
        choose_command: Callable[[DebugSession], str],
        max_retries: int,
    ) -> list[DebugSession]:
        sessions: list[DebugSession] = []
        try:
            for case in self.load_cases([path]):
                session = DebugSession(self.step_executor, case, self.context, max_retries=max_retries)
                sessions.append(session)
                while not session.done:
                    command = choose_command(session)
                    try:
                        await session.dispatch(command)
                    except DebugCommandError as e:
                        logger.warning("%s", e)
                if session.state == DebugState.ABORTED:
                    break
        finally:
            await self.provider.close_all()
        return sessions
