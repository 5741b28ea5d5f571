"""Configuration models for the scenario runner."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "http://localhost:3000"


class RunnerConfig(BaseModel):
    # Navigation default when a goto step carries no usable URL
    base_url: str = DEFAULT_BASE_URL

    # Rules
    patterns_file: Optional[str] = "tests/config/step-patterns.yaml"

    # Extracted data
    results_dir: str = "results/extracted-data"
    persist_extracted: bool = True

    # Execution
    max_parallel_cases: int = 1
    fail_on_agent_error: bool = False
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720

    # AI settings (used by the Playwright backend for act/extract/observe/agent)
    ai_model: str = "claude-opus-4-6"
    ai_max_tokens: int = 4000

    # Reporting
    report_output_dir: str = "./itest-reports"

    # Extra placeholder values merged over the process environment
    variables: dict[str, str] = Field(default_factory=dict)

    @field_validator("max_parallel_cases")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @classmethod
    def load(cls, path: str | Path) -> "RunnerConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def load_or_default(cls, path: str | Path) -> "RunnerConfig":
        try:
            return cls.load(path)
        except FileNotFoundError:
            return cls()

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(), f, indent=2, ensure_ascii=False)
