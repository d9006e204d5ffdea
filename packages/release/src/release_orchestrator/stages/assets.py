from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from release_orchestrator.core import ArtifactNotFoundError
from release_orchestrator.pipeline.events import EventType
from release_orchestrator.pipeline.matrix import CellContext
from release_orchestrator.pipeline.stage import FunctionStage, Stage
from release_orchestrator.pipeline.types import MatrixCell, OsLabel, ReleaseAsset
from release_orchestrator.remote.service import ReleaseService
from release_orchestrator.steps.build import BuildStep, run_setup_commands
from release_orchestrator.steps.checkout import verify_source_tree
from release_orchestrator.steps.commands import CommandRunner, run_command
from release_orchestrator.steps.package import PackageStep

from .release import RELEASE_URL_ARTIFACT

CELL_STAGES: tuple[str, ...] = ("checkout", "setup", "build", "package", "upload")


@dataclass(frozen=True)
class PublishCellStages:
    """
    Stage sequence of one publish cell:

      checkout -> setup -> build -> package -> upload

    Called once per matrix cell to produce that cell's stages.
    """

    service: ReleaseService
    source_dir: Path
    build_step: BuildStep
    package_step: PackageStep
    manifest: str = "Cargo.toml"
    setup_commands: Mapping[OsLabel, Sequence[Sequence[str]]] = field(default_factory=dict)
    setup_timeout: float = 900.0
    runner: CommandRunner = run_command

    def __call__(self, cell: MatrixCell) -> list[Stage]:
        return [
            FunctionStage(stage_id="checkout", fn=self.checkout),
            FunctionStage(stage_id="setup", fn=self.setup),
            FunctionStage(stage_id="build", fn=self.build),
            FunctionStage(stage_id="package", fn=self.package),
            FunctionStage(stage_id="upload", fn=self.upload),
        ]

    def checkout(self, cctx: CellContext) -> dict[str, Any]:
        root = verify_source_tree(self.source_dir, manifest=self.manifest)
        cctx.workdir.mkdir(parents=True, exist_ok=True)
        return {"source_dir": str(root), "workdir": str(cctx.workdir)}

    def setup(self, cctx: CellContext) -> dict[str, Any]:
        commands = self.setup_commands.get(cctx.cell.os, ())
        ran = run_setup_commands(
            cctx.cell,
            commands,
            cwd=Path(cctx.state["source_dir"]),
            timeout=self.setup_timeout,
            runner=self.runner,
            cancel=cctx.run.cancel,
        )
        return {"_metrics": {"setup_commands": ran}}

    def build(self, cctx: CellContext) -> dict[str, Any]:
        art = self.build_step.build(
            cctx.cell,
            target_dir=cctx.run.layout.cell_target_dir(cctx.cell.cell_id),
            cancel=cctx.run.cancel,
        )
        return {"binary_path": str(art.path), "features": list(art.features)}

    def package(self, cctx: CellContext) -> dict[str, Any]:
        asset = self.package_step.package(
            cctx.cell,
            Path(cctx.state["binary_path"]),
            out_dir=cctx.workdir,
            cancel=cctx.run.cancel,
        )
        ref = cctx.run.record_artifact(
            stage="package", path=asset.archive_path, content_type=asset.content_type
        )
        return {
            "archive_path": str(asset.archive_path),
            "asset_name": asset.asset_name,
            "content_type": asset.content_type,
            "sha256": asset.sha256,
            "bytes": asset.bytes,
            "_artifacts": [ref],
        }

    def upload(self, cctx: CellContext) -> dict[str, Any]:
        try:
            upload_url = self.service.fetch_artifact(RELEASE_URL_ARTIFACT).decode("utf-8").strip()
        except ArtifactNotFoundError:
            raise ArtifactNotFoundError(
                f"{cctx.cell.cell_id}: release upload url has not been published"
            ) from None
        if not upload_url:
            raise ArtifactNotFoundError(f"{cctx.cell.cell_id}: release upload url is empty")

        asset = ReleaseAsset(
            cell=cctx.cell,
            archive_path=Path(cctx.state["archive_path"]),
            asset_name=cctx.state["asset_name"],
            content_type=cctx.state["content_type"],
            sha256=cctx.state.get("sha256"),
            bytes=cctx.state.get("bytes"),
        )
        uploaded = self.service.upload_asset(
            upload_url, asset.archive_path, asset.asset_name, asset.content_type
        )
        cctx.run.emit(
            EventType.ASSET_UPLOADED,
            stage="upload",
            cell=cctx.cell.cell_id,
            asset_name=asset.asset_name,
            bytes=asset.bytes,
        )
        return {
            "uploaded_asset": uploaded.name,
            "download_url": uploaded.download_url,
            "_assets": [asset],
        }
