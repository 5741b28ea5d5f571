"""Scenario data structures produced by the scenario parser."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class StepInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    comment: Optional[str] = None
    workflow_id: str = "shared-actions"


class TestCase(BaseModel):
    __test__ = False  # not a pytest collection target

    name: str
    comments: list[str] = Field(default_factory=list)
    steps: list[StepInfo] = Field(default_factory=list)
