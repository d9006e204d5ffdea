from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from release_orchestrator.core import atomic_write_json

from .graph import GroupResult, RunResult


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str  # "success" | "failed" | "cancelled"
    duration_ms: int

    groups: list[GroupResult] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)
    events_jsonl: Optional[str] = None
    provenance: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "groups": [g.to_dict() for g in self.groups],
            "failures": self.failures,
            "events_jsonl": self.events_jsonl,
            "provenance": self.provenance,
            "meta": self.meta,
        }

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())


def build_run_report(
    *,
    run_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    result: RunResult,
    events_jsonl: str | None,
    provenance: dict[str, Any] | None = None,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    return RunReport(
        run_id=run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=result.status,
        duration_ms=duration_ms,
        groups=list(result.groups),
        failures=result.failures(),
        events_jsonl=events_jsonl,
        provenance=provenance or {},
        meta=meta or {},
    )
