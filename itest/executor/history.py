"""History store — execution log and extracted-data artifacts."""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from itest.models.execution import ExecutionRecord, HistoryStats

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

_KEY_CLEAN_RE = re.compile(r"[^\w]+")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _json_type(data: Any) -> str:
    if data is None:
        return "null"
    if isinstance(data, bool):
        return "boolean"
    if isinstance(data, (int, float)):
        return "number"
    if isinstance(data, str):
        return "string"
    return "object"


def data_size(data: Any) -> int:
    """Length of the JSON encoding of ``data``."""
    return len(json.dumps(data, ensure_ascii=False, default=str))


class HistoryStore:
    """Append-only execution log plus a key -> artifact map.

    One store is shared by every case in a process; call :meth:`export` on
    shutdown to flush it to disk.
    """

    def __init__(self, results_dir: Path | str | None = None, persist: bool = True):
        self.results_dir = Path(results_dir) if results_dir else Path("results") / "extracted-data"
        self.persist = persist
        self._records: list[ExecutionRecord] = []
        self._artifacts: dict[str, Any] = {}

    # -- execution log -----------------------------------------------------

    def append(self, record: ExecutionRecord) -> None:
        self._records.append(record)

    @property
    def records(self) -> list[ExecutionRecord]:
        return list(self._records)

    def recent(self, limit: int = 10) -> list[ExecutionRecord]:
        if limit <= 0:
            return []
        return self._records[-limit:]

    def stats(self) -> HistoryStats:
        total = len(self._records)
        successful = [r for r in self._records if r.success]

        types: dict[str, int] = {}
        for record in self._records:
            types[record.kind] = types.get(record.kind, 0) + 1

        average = 0
        timed = [r.duration_ms for r in successful if r.duration_ms]
        if timed:
            average = round(sum(timed) / len(timed))

        return HistoryStats(
            total_executions=total,
            successful_executions=len(successful),
            failed_executions=total - len(successful),
            execution_types=types,
            extracted_total=len(self._artifacts),
            extracted_keys=list(self._artifacts.keys()),
            average_duration_ms=average,
            success_rate=round(len(successful) / total * 100) if total else 0,
        )

    # -- extracted data ----------------------------------------------------

    @staticmethod
    def generate_key(target: str) -> str:
        """Build a storage key from the extraction target.

        The millisecond timestamp alone collides under rapid repeated calls,
        so a short random token is appended.
        """
        clean = _KEY_CLEAN_RE.sub("_", target).strip("_").lower() or "data"
        return f"extracted_{clean}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"

    def put_artifact(self, key: str, data: Any) -> Optional[Path]:
        """Store extracted data; also writes a JSON file when persistence is on."""
        self._artifacts[key] = data
        if self.persist:
            return self.write_artifact_file(key, data)
        return None

    def get_artifact(self, key: str) -> Any:
        return self._artifacts.get(key)

    def extracted_data(self) -> dict[str, Any]:
        return dict(self._artifacts)

    def write_artifact_file(self, key: str, data: Any) -> Optional[Path]:
        path = self.results_dir / f"{key}.json"
        payload = {
            "key": key,
            "data": data,
            "timestamp": utc_timestamp(),
            "metadata": {
                "dataType": _json_type(data),
                "dataSize": data_size(data),
                "isArray": isinstance(data, (list, tuple)),
            },
        }
        try:
            self.results_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            logger.error("Failed to save extracted data to %s: %s", path, e)
            return None
        logger.debug("Extracted data saved to %s", path)
        return path

    # -- lifecycle ---------------------------------------------------------

    def export_bundle(self, history_limit: int = 50) -> dict[str, Any]:
        return {
            "extractedData": self.extracted_data(),
            "executionHistory": [r.model_dump() for r in self.recent(history_limit)],
            "stats": self.stats().model_dump(),
            "exportTimestamp": utc_timestamp(),
            "version": EXPORT_VERSION,
        }

    def export(self, path: Path | str | None = None, history_limit: int = 50) -> Path:
        """Write extracted data, history and stats together as one JSON file."""
        if path is None:
            path = self.results_dir / f"export_{int(time.time() * 1000)}.json"
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.export_bundle(history_limit), f, indent=2, ensure_ascii=False, default=str)
        logger.info("Exported execution data to %s", path)
        return path

    def clear(self) -> None:
        self._records.clear()
        self._artifacts.clear()
        logger.info("Cleared execution history and extracted data")
