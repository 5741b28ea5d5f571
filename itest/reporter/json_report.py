"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from itest.models.execution import CaseResult, HistoryStats, RunSummary


def build_report(
    run_id: str,
    scenario_files: list[str],
    summary: RunSummary,
    results: list[CaseResult],
    history_stats: HistoryStats | None = None,
    started_at: str = "",
    completed_at: str = "",
) -> dict[str, Any]:
    report: dict[str, Any] = {
        "run_id": run_id,
        "started_at": started_at,
        "completed_at": completed_at,
        "scenario_files": scenario_files,
        "summary": summary.model_dump(),
        "cases": [
            {
                "name": r.name,
                "status": r.status,
                "passed": r.passed,
                "duration_ms": r.duration_ms,
                "first_error": r.first_error,
                "failed_action": r.failed_action,
                "steps": [
                    {
                        "action": rec.action,
                        "type": rec.kind,
                        "pattern": rec.descriptor.matched_pattern_name,
                        "engine": rec.descriptor.engine,
                        "success": rec.success,
                        "duration_ms": rec.duration_ms,
                        "error": rec.error_message,
                    }
                    for rec in r.step_records
                ],
            }
            for r in results
        ],
    }
    if history_stats is not None:
        report["history"] = history_stats.model_dump()
    return report


def generate_json_report(report: dict[str, Any], output_dir: Path) -> Path:
    """Write a machine-readable JSON report as ``report_<run id>.json``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"report_{report['run_id']}.json"
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False, default=str)
    return output_path
