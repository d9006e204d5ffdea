from .artifacts import Artifact, ArtifactStore
from .context import RunContext
from .events import EventSink, EventType, make_event
from .graph import (
    GroupResult,
    MatrixStageGroup,
    PipelineGraph,
    RunResult,
    SingleStageGroup,
    StageGroup,
)
from .matrix import CellContext, CellResult, MatrixRunner, expand
from .report import RunReport, build_run_report
from .runner import PipelineRunner, RunnerConfig, RunOutcome
from .stage import FunctionStage, Stage, StageResult, run_stage
from .types import Dimension, MatrixCell, OsLabel, ReleaseAsset, os_label

__all__ = [
    "Artifact",
    "ArtifactStore",
    "RunContext",
    "EventSink",
    "EventType",
    "make_event",
    "GroupResult",
    "MatrixStageGroup",
    "PipelineGraph",
    "RunResult",
    "SingleStageGroup",
    "StageGroup",
    "CellContext",
    "CellResult",
    "MatrixRunner",
    "expand",
    "RunReport",
    "build_run_report",
    "PipelineRunner",
    "RunnerConfig",
    "RunOutcome",
    "FunctionStage",
    "Stage",
    "StageResult",
    "run_stage",
    "Dimension",
    "MatrixCell",
    "OsLabel",
    "ReleaseAsset",
    "os_label",
]
