from __future__ import annotations

import shutil
from pathlib import Path
from typing import Annotated, Callable

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from release_orchestrator.core import ConfigurationError, Settings, read_json
from release_orchestrator.pipeline.graph import (
    MatrixStageGroup,
    PipelineGraph,
    SingleStageGroup,
    StageGroup,
)
from release_orchestrator.pipeline.types import Dimension, OsLabel, os_label
from release_orchestrator.remote.service import ReleaseService
from release_orchestrator.stages import (
    CratePublishStage,
    CreateReleaseStage,
    PublishCellStages,
)
from release_orchestrator.steps.build import BuildStep
from release_orchestrator.steps.commands import CommandRunner, run_command
from release_orchestrator.steps.package import PackageStep
from release_orchestrator.steps.registry import RegistryPublisher

Label = Annotated[
    str,
    StringConstraints(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$"),
]

RELEASE_GROUP = "release"
PUBLISH_GROUP = "publish"
CRATES_GROUP = "crates"


class PipelineDefinition(BaseModel):
    """
    The one canonical release pipeline:

      release -> publish[os x engine] -> crates

    `setup_commands` is empty by default: toolchain installs depend on the
    runner image. A windows runner without clang gets it from a definition
    file, e.g. `{"setup_commands": {"windows": [["choco", "install", "llvm", "-y"]]}}`.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    binary_name: Label = "wascc-host"
    asset_prefix: Label = "wascchost"
    arch: Label = "x86_64"
    manifest_file: str = "Cargo.toml"
    crate_features: list[Label] = Field(default_factory=list)

    os: list[str] = Field(default_factory=lambda: ["linux", "macos", "windows"])
    engines: list[Label] = Field(default_factory=lambda: ["wasm3", "wasmtime"])
    setup_commands: dict[OsLabel, list[list[str]]] = Field(default_factory=dict)

    tag_pattern: str = "v*"
    draft: bool = False
    prerelease: bool = True
    content_type: str = "application/zip"
    publish_crate: bool = True

    @field_validator("os")
    @classmethod
    def _map_os(cls, v: list[str]) -> list[str]:
        try:
            return [os_label(x).value for x in v]
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

    @field_validator("setup_commands")
    @classmethod
    def _non_empty_commands(cls, v: dict[OsLabel, list[list[str]]]) -> dict[OsLabel, list[list[str]]]:
        for os_key, cmds in v.items():
            if any(not argv for argv in cmds):
                raise ValueError(f"setup_commands[{os_key}] contains an empty command")
        return v

    def dimensions(self) -> list[Dimension]:
        dims = [Dimension.of("os", self.os)]
        if self.engines:
            dims.append(Dimension.of("engine", self.engines))
        return dims

    def with_overrides(
        self,
        *,
        os: list[str] | None = None,
        engines: list[str] | None = None,
        publish_crate: bool | None = None,
    ) -> "PipelineDefinition":
        data = self.model_dump()
        if os:
            data["os"] = os
        if engines is not None:
            data["engines"] = engines
        if publish_crate is not None:
            data["publish_crate"] = publish_crate
        return PipelineDefinition.model_validate(data)

    @classmethod
    def load(cls, path: Path) -> "PipelineDefinition":
        try:
            return cls.model_validate(read_json(Path(path)))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Invalid pipeline definition {path}: {e}") from e


def build_graph(
    definition: PipelineDefinition,
    *,
    tag: str,
    source_dir: Path,
    service: ReleaseService,
    settings: Settings,
    runner: CommandRunner = run_command,
    which: Callable[[str], str | None] = shutil.which,
) -> PipelineGraph:
    """Assemble the release DAG for one tag push."""
    source_dir = Path(source_dir)

    build_step = BuildStep(
        source_dir=source_dir,
        binary_name=definition.binary_name,
        extra_features=tuple(definition.crate_features),
        timeout=settings.build_timeout,
        runner=runner,
    )
    package_step = PackageStep(
        asset_prefix=definition.asset_prefix,
        version=tag,
        arch=definition.arch,
        content_type=definition.content_type,
        timeout=settings.package_timeout,
        runner=runner,
        which=which,
    )
    cell_stages = PublishCellStages(
        service=service,
        source_dir=source_dir,
        build_step=build_step,
        package_step=package_step,
        manifest=definition.manifest_file,
        setup_commands=definition.setup_commands,
        setup_timeout=settings.setup_timeout,
        runner=runner,
    )

    groups: list[StageGroup] = [
        SingleStageGroup(
            group_id=RELEASE_GROUP,
            stage=CreateReleaseStage(
                service=service,
                tag=tag,
                draft=definition.draft,
                prerelease=definition.prerelease,
            ),
        ),
        MatrixStageGroup.from_dimensions(
            PUBLISH_GROUP,
            definition.dimensions(),
            cell_stages,
            needs=(RELEASE_GROUP,),
            max_parallel=settings.max_parallel_cells,
        ),
    ]

    if definition.publish_crate:
        publisher = RegistryPublisher(
            source_dir=source_dir,
            token=settings.registry_token,
            timeout=settings.registry_timeout,
            runner=runner,
        )
        groups.append(
            SingleStageGroup(
                group_id=CRATES_GROUP,
                stage=CratePublishStage(publisher=publisher, manifest=definition.manifest_file),
                needs=(PUBLISH_GROUP,),
            )
        )

    return PipelineGraph(groups)
