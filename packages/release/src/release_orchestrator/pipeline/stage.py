from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol

from release_orchestrator.core import ILogger, StageError, monotonic_ms, utc_now_iso

from .context import RunContext
from .events import EventType
from .types import ArtifactRef, ReleaseAsset


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


@dataclass(slots=True)
class FunctionStage:
    """
    Adapter that turns a plain function into a Stage.
    """

    stage_id: str
    fn: StageFn

    def run(self, target: Any) -> dict[str, Any] | None:
        return self.fn(target)


@dataclass(slots=True)
class StageResult:
    stage: str
    status: str  # "success" | "failed" | "skipped" | "cancelled"
    started_at_utc: Optional[str] = None
    finished_at_utc: Optional[str] = None
    duration_ms: int = 0

    outputs: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    artifacts: list[ArtifactRef] = field(default_factory=list)
    assets: list[ReleaseAsset] = field(default_factory=list)
    error: Optional[StageError] = None

    @classmethod
    def not_run(cls, stage: str, status: str) -> "StageResult":
        return cls(stage=stage, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "status": self.status,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "duration_ms": self.duration_ms,
            "outputs": self.outputs,
            "metrics": self.metrics,
            "warnings": self.warnings,
            "artifacts": [
                {
                    "path": a.path,
                    "bytes": a.bytes,
                    "sha256": a.sha256,
                    "content_type": a.content_type,
                }
                for a in self.artifacts
            ],
            "assets": [a.to_dict() for a in self.assets],
            "error": (
                None
                if self.error is None
                else {
                    "exc_type": self.error.exc_type,
                    "message": self.error.message,
                    "traceback": self.error.traceback,
                }
            ),
        }


class Stage(Protocol):
    stage_id: str

    def run(self, target: Any) -> dict[str, Any] | None: ...


StageFn = Callable[[Any], dict[str, Any] | None]


def _pop_list(out: dict[str, Any], key: str) -> list[Any]:
    v = out.pop(key, None)
    return list(v) if isinstance(v, list) else []


def run_stage(
    *,
    ctx: RunContext,
    stage: Stage,
    target: Any = None,
    log: ILogger | None = None,
    index: int | None = None,
    total: int | None = None,
    scope: Mapping[str, Any] | None = None,
) -> StageResult:
    """
    Run one stage and capture its outcome as a StageResult.

    `target` is what the stage receives (the RunContext for top-level stages,
    a CellContext inside a matrix cell). Exceptions never escape: they become
    a failed result carrying a StageError.

    Stage outputs may carry the reserved keys `_warnings`, `_metrics`,
    `_artifacts` and `_assets`; they are moved onto the result.
    """
    stage_id = stage.stage_id
    scope = dict(scope or {})
    log = log or ctx.stage_logger(stage_id, **scope)

    t0 = monotonic_ms()
    started_at = utc_now_iso()
    position = f"{index}/{total}" if index is not None and total is not None else None

    ctx.emit(EventType.STAGE_START, stage=stage_id, **scope)
    log.info("Stage starting", position=position)

    warnings: list[str] = []
    metrics: dict[str, Any] = {}

    try:
        out = stage.run(ctx if target is None else target) or {}
        if not isinstance(out, dict):
            raise TypeError(
                f"Stage {stage_id} returned {type(out).__name__}, expected dict or None"
            )

        warnings.extend(str(x) for x in _pop_list(out, "_warnings"))
        m = out.pop("_metrics", None)
        if isinstance(m, dict):
            metrics.update(m)
        artifacts = _pop_list(out, "_artifacts")
        assets = _pop_list(out, "_assets")

        for w in warnings:
            ctx.emit(EventType.STAGE_WARN, stage=stage_id, message=w, **scope)
            log.warning(w)

        if metrics:
            ctx.emit(EventType.STAGE_METRICS, stage=stage_id, metrics=metrics, **scope)

        duration = monotonic_ms() - t0
        ctx.emit(EventType.STAGE_SUCCESS, stage=stage_id, duration_ms=duration, **scope)
        log_fields: dict[str, object] = {
            "position": position,
            "duration_ms": duration,
            "duration": format_duration_ms(duration),
            "outputs": sorted(out.keys()),
        }
        if warnings:
            log_fields["warnings"] = len(warnings)
        if assets:
            log_fields["assets"] = len(assets)
        log.info("Stage succeeded", **log_fields)

        return StageResult(
            stage=stage_id,
            status="success",
            started_at_utc=started_at,
            finished_at_utc=utc_now_iso(),
            duration_ms=duration,
            outputs=out,
            metrics=metrics,
            warnings=warnings,
            artifacts=artifacts,
            assets=assets,
        )

    except Exception as e:
        tb = traceback.format_exc()
        duration = monotonic_ms() - t0

        ctx.emit(
            EventType.STAGE_FAILED,
            stage=stage_id,
            duration_ms=duration,
            exc_type=type(e).__name__,
            message=str(e),
            **scope,
        )
        log.error(
            "Stage failed",
            position=position,
            duration_ms=duration,
            duration=format_duration_ms(duration),
            exc_type=type(e).__name__,
            error=str(e),
        )
        log.debug("Stage exception", traceback=tb)

        return StageResult(
            stage=stage_id,
            status="failed",
            started_at_utc=started_at,
            finished_at_utc=utc_now_iso(),
            duration_ms=duration,
            metrics=metrics,
            warnings=warnings,
            error=StageError(exc_type=type(e).__name__, message=str(e), traceback=tb),
        )
