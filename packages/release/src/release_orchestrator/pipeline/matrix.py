from __future__ import annotations

import itertools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from release_orchestrator.core import (
    ConfigurationError,
    ILogger,
    monotonic_ms,
    utc_now_iso,
)

from .context import RunContext
from .events import EventType
from .stage import Stage, StageResult, format_duration_ms, run_stage
from .types import Dimension, MatrixCell, ReleaseAsset, os_label

StagesFor = Callable[[MatrixCell], Sequence[Stage]]


def _normalize_dimension(dim: Dimension) -> Dimension:
    if not dim.values:
        raise ConfigurationError(f"Matrix dimension {dim.name!r} has no values")
    values = dim.values
    if dim.name == "os":
        values = tuple(os_label(v).value for v in values)
    dupes = sorted({v for v in values if values.count(v) > 1})
    if dupes:
        raise ConfigurationError(
            f"Matrix dimension {dim.name!r} has duplicate values: {dupes}"
        )
    return Dimension(name=dim.name, values=values)


def expand(dimensions: Sequence[Dimension]) -> list[MatrixCell]:
    """
    Expand matrix dimensions into their full Cartesian product.

    Order is lexicographic over declaration order: the first dimension varies
    slowest. Raw `os` identifiers (`ubuntu-latest`) are mapped to their
    friendly labels before duplicate checks.
    """
    if not dimensions:
        raise ConfigurationError("Matrix needs at least one dimension")

    names = [d.name for d in dimensions]
    if len(names) != len(set(names)):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigurationError(f"Duplicate matrix dimension(s): {dupes}")
    if "os" not in names:
        raise ConfigurationError("Matrix must declare an 'os' dimension")

    dims = [_normalize_dimension(d) for d in dimensions]
    return [
        MatrixCell(coords=tuple(zip(names, combo)))
        for combo in itertools.product(*(d.values for d in dims))
    ]


@dataclass(slots=True)
class CellContext:
    """
    Execution state owned by one matrix cell.

    `state` accumulates the outputs of the cell's completed stages, so a later
    stage reads what an earlier one produced (e.g. `binary_path`).
    """

    run: RunContext
    cell: MatrixCell
    group_id: str
    workdir: Path
    log: ILogger
    state: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CellResult:
    cell_id: str
    coords: dict[str, str]
    status: str  # "success" | "failed" | "cancelled"
    duration_ms: int = 0
    failed_stage: str | None = None
    stages: list[StageResult] = field(default_factory=list)
    produced_assets: list[ReleaseAsset] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "cell_id": self.cell_id,
            "coords": self.coords,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "failed_stage": self.failed_stage,
            "stages": [s.to_dict() for s in self.stages],
            "produced_assets": [a.to_dict() for a in self.produced_assets],
        }


class MatrixRunner:
    """
    Runs each matrix cell's stage sequence in isolation.

    A failing stage aborts only the rest of its own cell; sibling cells always
    run to completion. Cells run concurrently, at most `max_parallel` at once.
    """

    def __init__(self, *, max_parallel: int | None = None) -> None:
        if max_parallel is not None and max_parallel < 1:
            raise ConfigurationError("max_parallel must be >= 1")
        self.max_parallel = max_parallel

    expand = staticmethod(expand)

    def run_cell(
        self,
        ctx: RunContext,
        cell: MatrixCell,
        stages: Sequence[Stage],
        *,
        group_id: str = "matrix",
    ) -> CellResult:
        cell_id = cell.cell_id
        scope = {"group": group_id, "cell": cell_id}
        log = ctx.logger.bind(**scope)
        cctx = CellContext(
            run=ctx,
            cell=cell,
            group_id=group_id,
            workdir=ctx.layout.cell_dir(cell_id),
            log=log,
        )

        t0 = monotonic_ms()
        ctx.emit(EventType.CELL_START, coords=cell.to_dict(), started_at=utc_now_iso(), **scope)

        results: list[StageResult] = []
        assets: list[ReleaseAsset] = []
        status = "success"
        failed_stage: str | None = None

        total = len(stages)
        for idx, st in enumerate(stages, start=1):
            if status != "success":
                results.append(StageResult.not_run(st.stage_id, "skipped"))
                continue
            if ctx.cancelled:
                status = "cancelled"
                results.append(StageResult.not_run(st.stage_id, "cancelled"))
                continue

            res = run_stage(
                ctx=ctx,
                stage=st,
                target=cctx,
                log=log.bind(stage=st.stage_id),
                index=idx,
                total=total,
                scope=scope,
            )
            results.append(res)

            if res.status == "failed":
                status = "failed"
                failed_stage = st.stage_id
                continue

            cctx.state.update(res.outputs)
            assets.extend(res.assets)

        duration = monotonic_ms() - t0
        ctx.emit(
            EventType.CELL_FINISH,
            status=status,
            failed_stage=failed_stage,
            duration_ms=duration,
            **scope,
        )
        if status == "success":
            log.info("Cell succeeded", duration=format_duration_ms(duration), assets=len(assets))
        else:
            log.error("Cell did not complete", status=status, failed_stage=failed_stage)

        return CellResult(
            cell_id=cell_id,
            coords=cell.to_dict(),
            status=status,
            duration_ms=duration,
            failed_stage=failed_stage,
            stages=results,
            produced_assets=assets,
        )

    def run_all(
        self,
        ctx: RunContext,
        cells: Sequence[MatrixCell],
        stages_for: StagesFor,
        *,
        group_id: str = "matrix",
    ) -> list[CellResult]:
        """Run every cell; results come back in expansion order."""
        if not cells:
            return []

        workers = min(len(cells), self.max_parallel or len(cells))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"{group_id}-cell"
        ) as pool:
            futures = [
                pool.submit(self.run_cell, ctx, cell, stages_for(cell), group_id=group_id)
                for cell in cells
            ]
            return [f.result() for f in futures]
