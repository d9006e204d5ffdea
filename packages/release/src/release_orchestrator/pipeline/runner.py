from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from release_orchestrator.core import (
    ILogger,
    RunLayout,
    RunProvenance,
    configure_logging,
    get_logger,
    monotonic_ms,
    new_run_id,
    utc_now_iso,
)

from .artifacts import ArtifactStore
from .context import RunContext
from .events import EventSink, EventType, make_event
from .graph import PipelineGraph, RunResult
from .report import build_run_report
from .stage import format_duration_ms


@dataclass(slots=True)
class RunnerConfig:
    max_parallel_groups: int | None = None


@dataclass(frozen=True, slots=True)
class RunOutcome:
    exit_code: int
    report_path: Path
    result: RunResult


def default_logger() -> ILogger:
    """
    Provide a structlog BoundLogger that satisfies ILogger.
    """
    configure_logging()
    return get_logger("pipeline")


class PipelineRunner:
    """
    Runs a PipelineGraph once and persists its record:
      - {run_root}/{run_id}/events.jsonl
      - {run_root}/{run_id}/run_report.json
    """

    def __init__(
        self,
        *,
        graph: PipelineGraph,
        cfg: RunnerConfig | None = None,
        logger: ILogger | None = None,
    ) -> None:
        self.graph = graph
        self.cfg = cfg or RunnerConfig()
        self.logger: ILogger = logger or default_logger()
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        """Abandon every stage group and cell that has not started yet."""
        if not self.cancel_event.is_set():
            self.logger.warning("Cancellation requested")
        self.cancel_event.set()

    def run(
        self,
        *,
        run_root: Path,
        work_root: Path,
        run_id: str | None = None,
        artifacts: ArtifactStore | None = None,
        meta: dict[str, Any] | None = None,
    ) -> RunOutcome:
        meta = meta or {}
        rid = run_id or new_run_id()
        layout = RunLayout(run_root=Path(run_root), work_root=Path(work_root), run_id=rid)
        layout.ensure_dirs()

        events_path = layout.events_jsonl()
        sink = EventSink(events_path)

        ctx = RunContext(
            run_id=rid,
            layout=layout,
            logger=self.logger,
            events=sink,
            artifacts=artifacts or ArtifactStore(root=layout.artifacts_dir()),
            cancel=self.cancel_event,
            meta=meta,
        )

        started_at = utc_now_iso()
        t0 = monotonic_ms()
        provenance = RunProvenance(run_id=rid, started_at_utc=started_at)

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            groups=self.graph.order(),
            run_dir=str(layout.run_dir()),
            meta_keys=sorted(meta.keys()),
        )
        sink.emit(make_event(event_type=EventType.RUN_START, run_id=rid, **meta))

        result = self.graph.run(ctx, max_workers=self.cfg.max_parallel_groups)

        if ctx.cancelled:
            sink.emit(make_event(event_type=EventType.RUN_CANCELLED, run_id=rid))

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0

        report = build_run_report(
            run_id=rid,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            result=result,
            events_jsonl=str(events_path),
            provenance=provenance.to_dict(),
            meta=meta,
        )

        report_json = layout.report_json()
        report.write_json(report_json)

        sink.emit(
            make_event(
                event_type=EventType.RUN_FINISH,
                run_id=rid,
                status=report.status,
                duration_ms=duration,
                report_json=str(report_json),
            )
        )
        sink.close()

        self.logger.info(
            "Run Complete",
            duration_ms=duration,
            duration=format_duration_ms(duration),
            report=str(report_json),
            events=str(events_path),
            status=report.status,
            failures=len(report.failures),
        )

        exit_code = 0 if report.status == "success" else 1
        return RunOutcome(exit_code=exit_code, report_path=report_json, result=result)
