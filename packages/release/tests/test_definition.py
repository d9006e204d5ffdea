from __future__ import annotations

import json
from pathlib import Path

import pytest
from release_orchestrator.core import ConfigurationError, Settings
from release_orchestrator.definition import (
    CRATES_GROUP,
    PUBLISH_GROUP,
    RELEASE_GROUP,
    PipelineDefinition,
    build_graph,
)
from release_orchestrator.pipeline import MatrixStageGroup


def test_default_definition_matrix() -> None:
    d = PipelineDefinition()
    dims = d.dimensions()
    assert [dim.name for dim in dims] == ["os", "engine"]
    assert dims[0].values == ("linux", "macos", "windows")
    assert dims[1].values == ("wasm3", "wasmtime")
    assert d.prerelease is True and d.draft is False


def test_os_values_are_normalized() -> None:
    d = PipelineDefinition(os=["ubuntu-latest", "windows-latest"])
    assert d.os == ["linux", "windows"]


def test_load_from_file(tmp_path: Path) -> None:
    p = tmp_path / "pipeline.json"
    p.write_text(
        json.dumps(
            {
                "os": ["linux"],
                "engines": [],
                "crate_features": ["prometheus"],
                "setup_commands": {"linux": [["sudo", "apt-get", "install", "-y", "zip"]]},
            }
        )
    )
    d = PipelineDefinition.load(p)
    assert [dim.name for dim in d.dimensions()] == ["os"]
    assert d.setup_commands == {"linux": [["sudo", "apt-get", "install", "-y", "zip"]]}


@pytest.mark.parametrize(
    "payload",
    [
        {"os": ["plan9"]},
        {"unknown_key": 1},
        {"setup_commands": {"linux": [[]]}},
        {"asset_prefix": "has space"},
    ],
)
def test_invalid_definitions(tmp_path: Path, payload: dict) -> None:
    p = tmp_path / "pipeline.json"
    p.write_text(json.dumps(payload))
    with pytest.raises(ConfigurationError):
        PipelineDefinition.load(p)


def test_missing_definition_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        PipelineDefinition.load(tmp_path / "nope.json")


def test_overrides() -> None:
    d = PipelineDefinition().with_overrides(os=["macos"], engines=["wasmtime"], publish_crate=False)
    assert d.os == ["macos"]
    assert d.engines == ["wasmtime"]
    assert d.publish_crate is False

    unchanged = PipelineDefinition().with_overrides()
    assert unchanged == PipelineDefinition()


def test_build_graph_shape(source_dir: Path, settings: Settings, release_service) -> None:
    g = build_graph(
        PipelineDefinition(), tag="v2.0.0", source_dir=source_dir, service=release_service, settings=settings
    )
    assert g.order() == [RELEASE_GROUP, PUBLISH_GROUP, CRATES_GROUP]
    assert g.needs(PUBLISH_GROUP) == (RELEASE_GROUP,)
    assert g.needs(CRATES_GROUP) == (PUBLISH_GROUP,)

    publish = g.groups[PUBLISH_GROUP]
    assert isinstance(publish, MatrixStageGroup)
    assert len(publish.cells) == 6
    assert publish.max_parallel == settings.max_parallel_cells


def test_build_graph_without_crates(source_dir: Path, settings: Settings, release_service) -> None:
    g = build_graph(
        PipelineDefinition(publish_crate=False),
        tag="v2.0.0",
        source_dir=source_dir,
        service=release_service,
        settings=settings,
    )
    assert g.order() == [RELEASE_GROUP, PUBLISH_GROUP]
