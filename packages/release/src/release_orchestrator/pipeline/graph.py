from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from typing import Any, Protocol, Sequence

from release_orchestrator.core import (
    ConfigurationError,
    StageError,
    monotonic_ms,
    stage_error_from_exc,
    utc_now_iso,
)

from .context import RunContext
from .events import EventType
from .matrix import CellResult, MatrixRunner, StagesFor, expand
from .stage import Stage, StageResult, run_stage
from .types import Dimension, MatrixCell, ReleaseAsset


@dataclass(slots=True)
class GroupResult:
    group_id: str
    kind: str  # "stage" | "matrix"
    status: str  # "success" | "failed" | "skipped" | "cancelled"
    needs: tuple[str, ...] = ()
    started_at_utc: str | None = None
    finished_at_utc: str | None = None
    duration_ms: int = 0
    reason: str | None = None

    stages: list[StageResult] = field(default_factory=list)
    cells: list[CellResult] = field(default_factory=list)
    error: StageError | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def assets(self) -> list[ReleaseAsset]:
        out: list[ReleaseAsset] = []
        for s in self.stages:
            out.extend(s.assets)
        for c in self.cells:
            out.extend(c.produced_assets)
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "kind": self.kind,
            "status": self.status,
            "needs": list(self.needs),
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "duration_ms": self.duration_ms,
            "reason": self.reason,
            "stages": [s.to_dict() for s in self.stages],
            "cells": [c.to_dict() for c in self.cells],
            "error": None if self.error is None else self.error.message,
        }


class StageGroup(Protocol):
    group_id: str
    needs: tuple[str, ...]
    kind: str

    def execute(self, ctx: RunContext) -> GroupResult: ...


@dataclass(frozen=True, slots=True)
class SingleStageGroup:
    group_id: str
    stage: Stage
    needs: tuple[str, ...] = ()
    kind: str = "stage"

    def execute(self, ctx: RunContext) -> GroupResult:
        res = run_stage(
            ctx=ctx,
            stage=self.stage,
            log=ctx.stage_logger(self.stage.stage_id, group=self.group_id),
            scope={"group": self.group_id},
        )
        return GroupResult(
            group_id=self.group_id,
            kind=self.kind,
            status=res.status,
            needs=self.needs,
            stages=[res],
        )


@dataclass(frozen=True, slots=True)
class MatrixStageGroup:
    """
    A stage group fanned out over the Cartesian product of `dimensions`.

    Cells are expanded once, at construction, so a malformed matrix is a
    configuration error rather than a run-time failure.
    """

    group_id: str
    cells: tuple[MatrixCell, ...]
    stages_for: StagesFor
    needs: tuple[str, ...] = ()
    max_parallel: int | None = None
    kind: str = "matrix"

    @classmethod
    def from_dimensions(
        cls,
        group_id: str,
        dimensions: Sequence[Dimension],
        stages_for: StagesFor,
        *,
        needs: Sequence[str] = (),
        max_parallel: int | None = None,
    ) -> "MatrixStageGroup":
        return cls(
            group_id=group_id,
            cells=tuple(expand(dimensions)),
            stages_for=stages_for,
            needs=tuple(needs),
            max_parallel=max_parallel,
        )

    def execute(self, ctx: RunContext) -> GroupResult:
        runner = MatrixRunner(max_parallel=self.max_parallel)
        cells = runner.run_all(ctx, self.cells, self.stages_for, group_id=self.group_id)

        if all(c.ok for c in cells):
            status = "success"
        elif ctx.cancelled and not any(c.status == "failed" for c in cells):
            status = "cancelled"
        else:
            status = "failed"

        failed = [c.cell_id for c in cells if not c.ok]
        return GroupResult(
            group_id=self.group_id,
            kind=self.kind,
            status=status,
            needs=self.needs,
            cells=cells,
            reason=f"cells not successful: {failed}" if failed else None,
        )


@dataclass(slots=True)
class RunResult:
    status: str  # "success" | "failed" | "cancelled"
    groups: list[GroupResult]

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def group(self, group_id: str) -> GroupResult:
        for g in self.groups:
            if g.group_id == group_id:
                return g
        raise KeyError(group_id)

    def assets(self) -> list[ReleaseAsset]:
        return [a for g in self.groups for a in g.assets()]

    def failures(self) -> list[dict[str, Any]]:
        """
        Per-group, per-cell, per-stage breakdown of everything that did not
        succeed.
        """
        out: list[dict[str, Any]] = []
        for g in self.groups:
            if g.ok:
                continue
            if g.status in ("skipped", "cancelled") or (g.error is not None):
                out.append(
                    {
                        "group": g.group_id,
                        "cell": None,
                        "stage": None,
                        "status": g.status,
                        "error": g.reason or (g.error.message if g.error else None),
                    }
                )
                continue
            for s in g.stages:
                if s.status != "success":
                    out.append(
                        {
                            "group": g.group_id,
                            "cell": None,
                            "stage": s.stage,
                            "status": s.status,
                            "error": s.error.message if s.error else None,
                        }
                    )
            for c in g.cells:
                if c.ok:
                    continue
                failing = next((s for s in c.stages if s.status == "failed"), None)
                out.append(
                    {
                        "group": g.group_id,
                        "cell": c.cell_id,
                        "stage": c.failed_stage,
                        "status": c.status,
                        "error": failing.error.message if failing and failing.error else None,
                    }
                )
        return out


class PipelineGraph:
    """
    Forward DAG of stage groups.

    A group starts only once every group it needs has succeeded; if any of
    them failed, was skipped or was cancelled, the group is skipped without
    being attempted. Groups with no path between them run concurrently.
    """

    def __init__(self, groups: Sequence[StageGroup]) -> None:
        self.groups: dict[str, StageGroup] = {}
        for g in groups:
            if g.group_id in self.groups:
                raise ConfigurationError(f"Duplicate stage group id: {g.group_id!r}")
            self.groups[g.group_id] = g

        for g in self.groups.values():
            missing = [d for d in g.needs if d not in self.groups]
            if missing:
                raise ConfigurationError(
                    f"Stage group {g.group_id!r} needs undeclared group(s): {missing}"
                )
            if g.group_id in g.needs:
                raise ConfigurationError(f"Stage group {g.group_id!r} needs itself")

        self._deps = {gid: tuple(g.needs) for gid, g in self.groups.items()}
        try:
            self._order = list(TopologicalSorter(self._deps).static_order())
        except CycleError as e:
            cycle = e.args[1] if len(e.args) > 1 else []
            raise ConfigurationError(f"Dependency cycle between stage groups: {cycle}") from e

    def order(self) -> list[str]:
        return list(self._order)

    def needs(self, group_id: str) -> tuple[str, ...]:
        return self._deps[group_id]

    def _not_run(self, ctx: RunContext, group: StageGroup, status: str, reason: str) -> GroupResult:
        ctx.emit(EventType.GROUP_SKIPPED, group=group.group_id, status=status, reason=reason)
        ctx.logger.warning("Stage group not run", group=group.group_id, status=status, reason=reason)
        return GroupResult(
            group_id=group.group_id,
            kind=group.kind,
            status=status,
            needs=tuple(group.needs),
            reason=reason,
        )

    def _execute(self, ctx: RunContext, group: StageGroup) -> GroupResult:
        started = utc_now_iso()
        t0 = monotonic_ms()
        ctx.emit(EventType.GROUP_START, group=group.group_id, kind=group.kind)
        try:
            res = group.execute(ctx)
        except Exception as e:
            ctx.logger.exception("Stage group crashed", group=group.group_id)
            res = GroupResult(
                group_id=group.group_id,
                kind=group.kind,
                status="failed",
                needs=tuple(group.needs),
                reason=str(e),
                error=stage_error_from_exc(e),
            )
        res.started_at_utc = started
        res.finished_at_utc = utc_now_iso()
        res.duration_ms = monotonic_ms() - t0
        ctx.emit(
            EventType.GROUP_FINISH,
            group=group.group_id,
            status=res.status,
            duration_ms=res.duration_ms,
        )
        return res

    def run(self, ctx: RunContext, *, max_workers: int | None = None) -> RunResult:
        sorter: TopologicalSorter[str] = TopologicalSorter(self._deps)
        sorter.prepare()

        results: dict[str, GroupResult] = {}
        running: dict[Future[GroupResult], str] = {}

        with ThreadPoolExecutor(
            max_workers=max_workers or max(1, len(self.groups)),
            thread_name_prefix="group",
        ) as pool:
            while sorter.is_active():
                for gid in sorter.get_ready():
                    group = self.groups[gid]
                    blocked = [d for d in group.needs if results[d].status != "success"]
                    if blocked:
                        results[gid] = self._not_run(
                            ctx, group, "skipped", f"upstream not successful: {blocked}"
                        )
                        sorter.done(gid)
                    elif ctx.cancelled:
                        results[gid] = self._not_run(ctx, group, "cancelled", "run cancelled")
                        sorter.done(gid)
                    else:
                        running[pool.submit(self._execute, ctx, group)] = gid

                if not running:
                    continue

                done, _ = wait(running, timeout=0.5, return_when=FIRST_COMPLETED)
                for fut in done:
                    gid = running.pop(fut)
                    results[gid] = fut.result()
                    sorter.done(gid)

        ordered = [results[gid] for gid in self._order]
        if all(r.ok for r in ordered):
            status = "success"
        elif ctx.cancelled:
            status = "cancelled"
        else:
            status = "failed"
        return RunResult(status=status, groups=ordered)
