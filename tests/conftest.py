"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import BrowserContext, Page

from itest.executor.context import ExecutionContext
from itest.executor.dispatcher import Dispatcher
from itest.executor.history import HistoryStore
from itest.executor.runner import StepExecutor, TestCaseRunner
from itest.models.config import RunnerConfig
from itest.models.scenario import StepInfo, TestCase
from itest.patterns.registry import PatternRegistry
from itest.translator.translator import Translator


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def runner_config(tmp_path: Path) -> RunnerConfig:
    """Create a test runner configuration writing under tmp_path."""
    return RunnerConfig(
        base_url="https://example.com",
        patterns_file=str(tmp_path / "step-patterns.yaml"),
        results_dir=str(tmp_path / "extracted"),
        persist_extracted=False,
        report_output_dir=str(tmp_path / "reports"),
    )


@pytest.fixture
def context(mock_provider: AsyncMock) -> ExecutionContext:
    """Create an execution context with a few placeholder variables."""
    return ExecutionContext(
        variables={
            "LOGIN_URL": "https://example.com/login",
            "USERNAME": "alice",
            "EMPTY": "",
        },
        base_url="https://example.com",
        session_provider=mock_provider,
    )


# ============================================================================
# Core Component Fixtures
# ============================================================================


@pytest.fixture
def registry() -> PatternRegistry:
    """Builtin-only pattern registry."""
    return PatternRegistry.build()


@pytest.fixture
def translator(registry: PatternRegistry) -> Translator:
    return Translator(registry)


@pytest.fixture
def store(tmp_path: Path) -> HistoryStore:
    """History store that keeps artifacts in memory only."""
    return HistoryStore(tmp_path / "extracted", persist=False)


@pytest.fixture
def dispatcher(store: HistoryStore, runner_config: RunnerConfig) -> Dispatcher:
    return Dispatcher(store, runner_config)


@pytest.fixture
def step_executor(translator: Translator, dispatcher: Dispatcher, mock_provider: AsyncMock) -> StepExecutor:
    return StepExecutor(translator, dispatcher, mock_provider)


@pytest.fixture
def case_runner(step_executor: StepExecutor) -> TestCaseRunner:
    return TestCaseRunner(step_executor)


# ============================================================================
# Scenario Fixtures
# ============================================================================


@pytest.fixture
def login_case() -> TestCase:
    """A three-step login case."""
    return TestCase(
        name="登录",
        steps=[
            StepInfo(action="打开登录页面 %LOGIN_URL%", workflow_id="login-flow"),
            StepInfo(action="输入用户名 %USERNAME%", workflow_id="login-flow"),
            StepInfo(action="点击登录按钮", workflow_id="login-flow"),
        ],
    )


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create a mock automation session where every operation succeeds."""
    session = AsyncMock()
    session.title.return_value = "Example Page"
    session.act.return_value = {"actions": [], "reasoning": "done"}
    session.extract.return_value = ["row 1", "row 2"]
    session.observe.return_value = []
    session.run_agent_task.return_value = {
        "steps": [{"turn": 1}, {"turn": 2}],
        "result": "finished",
        "error": None,
        "completed": True,
    }
    return session


@pytest.fixture
def mock_provider(mock_session: AsyncMock) -> AsyncMock:
    """Create a mock session provider handing out mock_session."""
    provider = AsyncMock()
    provider.get_session.return_value = mock_session
    return provider


@pytest.fixture
def mock_anthropic_client() -> Mock:
    """Create a mock Anthropic client."""
    mock_client = Mock()
    mock_response = Mock()
    mock_response.content = [Mock(text='{"test": "response"}')]
    mock_response.stop_reason = "end_turn"
    mock_response.usage = Mock(input_tokens=100, output_tokens=200)
    mock_client.messages.create.return_value = mock_response
    return mock_client


@pytest.fixture
def mock_ai_client() -> Mock:
    """Create a mock AIClient; set complete_json.return_value per test."""
    client = Mock()
    client.complete_json = Mock(return_value={})
    return client


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock(spec=Page)
    page.url = "https://example.com"
    page.title.return_value = "Example Page"
    page.screenshot = AsyncMock()
    page.goto = AsyncMock()
    page.click = AsyncMock()
    page.fill = AsyncMock()
    page.hover = AsyncMock()
    page.select_option = AsyncMock()
    page.evaluate = AsyncMock()
    page.locator = Mock()
    page.locator.return_value.first.scroll_into_view_if_needed = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.keyboard = AsyncMock()
    page.keyboard.press = AsyncMock()
    return page


@pytest.fixture
def mock_context() -> AsyncMock:
    """Create a mock Playwright browser context."""
    context = AsyncMock(spec=BrowserContext)
    context.new_page = AsyncMock()
    return context
