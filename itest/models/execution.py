"""Execution result data structures produced by the dispatcher and runner."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from itest.models.descriptor import ActionDescriptor


class ExecutionRecord(BaseModel):
    """Outcome of dispatching a single descriptor. Never mutated once created."""
    model_config = ConfigDict(frozen=True)

    id: str
    descriptor: ActionDescriptor
    success: bool
    result: Any = None
    error_message: Optional[str] = None
    duration_ms: int = 0
    workflow_id: str = ""
    timestamp: str = ""

    @property
    def kind(self) -> str:
        return self.descriptor.kind

    @property
    def action(self) -> str:
        return self.descriptor.original_text


class CaseStatus:
    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class CaseResult(BaseModel):
    name: str
    status: str = CaseStatus.NOT_STARTED
    passed: bool = False
    step_records: list[ExecutionRecord] = Field(default_factory=list)
    first_error: Optional[str] = None
    failed_action: Optional[str] = None
    start_time: str = ""
    end_time: str = ""
    duration_ms: int = 0


class ObservedElement(BaseModel):
    index: int = 0
    description: str = ""
    selector: str = ""
    type: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)


class AgentTaskResult(BaseModel):
    steps: list[Any] = Field(default_factory=list)
    result: Any = None
    error: Optional[str] = None
    completed: bool = False


class HistoryStats(BaseModel):
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    execution_types: dict[str, int] = Field(default_factory=dict)
    extracted_total: int = 0
    extracted_keys: list[str] = Field(default_factory=list)
    average_duration_ms: int = 0  # successful executions only
    success_rate: int = 0  # percent


class RunSummary(BaseModel):
    total_cases: int = 0
    passed_cases: int = 0
    failed_cases: int = 0
    total_steps: int = 0
    passed_steps: int = 0
    success_rate: float = 0.0  # percent, one decimal


class PageAction(BaseModel):
    """One primitive browser action decided for an ``act`` or agent step."""
    action_type: str  # click, fill, select, hover, scroll, wait, keyboard, clear, screenshot
    element_index: Optional[int] = None
    selector: Optional[str] = None
    value: Optional[str] = None
    description: str = ""
