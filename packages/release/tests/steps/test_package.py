from __future__ import annotations

from pathlib import Path

import pytest
from release_orchestrator.core import PackageError
from release_orchestrator.pipeline import MatrixCell
from release_orchestrator.steps import PackageStep


def _binary(tmp_path: Path, name: str = "wascc-host") -> Path:
    b = tmp_path / "target" / "release" / name
    b.parent.mkdir(parents=True, exist_ok=True)
    b.write_bytes(b"\x7fELF")
    return b


def test_linux_packages_with_zip(tmp_path: Path, make_runner, which) -> None:
    runner = make_runner()
    step = PackageStep(asset_prefix="wascchost", version="v2.0.0", runner=runner, which=which)

    asset = step.package(
        MatrixCell.of(os="linux", engine="wasm3"), _binary(tmp_path), out_dir=tmp_path / "out"
    )

    assert asset.asset_name == "wascchost-v2.0.0-linux-wasm3-x86_64.zip"
    assert asset.archive_path == tmp_path / "out" / "wascchost-linux-wasm3.zip"
    assert asset.archive_path.is_file()
    assert asset.bytes == asset.archive_path.stat().st_size
    assert asset.content_type == "application/zip"
    assert runner.calls == [
        ["/usr/bin/zip", "-j", str(asset.archive_path), str(tmp_path / "target" / "release" / "wascc-host")]
    ]


def test_windows_packages_with_powershell(tmp_path: Path, make_runner, which) -> None:
    runner = make_runner()
    step = PackageStep(asset_prefix="wascchost", version="v2.0.0", runner=runner, which=which)

    asset = step.package(
        MatrixCell.of(os="windows", engine="wasmtime"),
        _binary(tmp_path, "wascc-host.exe"),
        out_dir=tmp_path / "out",
    )

    assert asset.asset_name == "wascchost-v2.0.0-windows-wasmtime-x86_64.zip"
    assert asset.archive_path.is_file()
    assert len(runner.calls) == 2
    assert "Install-Module 7Zip4PowerShell" in runner.calls[0][-1]
    assert runner.calls[1][0] == "/usr/bin/powershell"
    assert "Compress-7Zip" in runner.calls[1][-1]


def test_missing_archiver_fails_without_running(tmp_path: Path, make_runner) -> None:
    runner = make_runner()
    step = PackageStep(
        asset_prefix="wascchost", version="v2.0.0", runner=runner, which=lambda tool: None
    )

    with pytest.raises(PackageError, match="not found"):
        step.package(MatrixCell.of(os="macos"), _binary(tmp_path), out_dir=tmp_path / "out")
    assert runner.calls == []


def test_missing_binary_fails(tmp_path: Path, make_runner, which) -> None:
    step = PackageStep(asset_prefix="wascchost", version="v2.0.0", runner=make_runner(), which=which)

    with pytest.raises(PackageError, match="does not exist"):
        step.package(MatrixCell.of(os="linux"), tmp_path / "nope", out_dir=tmp_path / "out")


def test_archiver_failure_is_a_package_error(tmp_path: Path, make_runner, which) -> None:
    runner = make_runner(fail=lambda argv: "-j" in argv)
    step = PackageStep(asset_prefix="wascchost", version="v2.0.0", runner=runner, which=which)

    with pytest.raises(PackageError, match="archiving failed") as ei:
        step.package(MatrixCell.of(os="linux"), _binary(tmp_path), out_dir=tmp_path / "out")
    assert ei.value.returncode == 1
    assert len(runner.matching("-j")) == 1


def test_stale_archive_is_replaced(tmp_path: Path, make_runner, which) -> None:
    out = tmp_path / "out"
    out.mkdir()
    (out / "wascchost-linux.zip").write_bytes(b"stale archive contents")

    step = PackageStep(asset_prefix="wascchost", version="v2.0.0", runner=make_runner(), which=which)
    asset = step.package(MatrixCell.of(os="linux"), _binary(tmp_path), out_dir=out)

    assert asset.archive_path.read_bytes() == b"PK\x03\x04\x7fELF"


def test_relative_paths_reach_the_archiver_absolute(
    tmp_path: Path, make_runner, which, monkeypatch
) -> None:
    monkeypatch.chdir(tmp_path)
    _binary(tmp_path)
    runner = make_runner()
    step = PackageStep(asset_prefix="wascchost", version="v2.0.0", runner=runner, which=which)

    asset = step.package(
        MatrixCell.of(os="linux", engine="wasm3"),
        Path("target/release/wascc-host"),
        out_dir=Path("work/cell"),
    )

    assert asset.archive_path == tmp_path / "work" / "cell" / "wascchost-linux-wasm3.zip"
    assert asset.archive_path.is_file()
    assert runner.calls == [
        [
            "/usr/bin/zip",
            "-j",
            str(tmp_path / "work" / "cell" / "wascchost-linux-wasm3.zip"),
            str(tmp_path / "target" / "release" / "wascc-host"),
        ]
    ]
