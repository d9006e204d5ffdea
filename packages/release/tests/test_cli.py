from __future__ import annotations

from pathlib import Path

import pytest
from release_orchestrator import cli
from release_orchestrator.core import load_settings


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RELEASE_ORCHESTRATOR_RUN_ROOT", str(tmp_path / "runs"))
    monkeypatch.setenv("RELEASE_ORCHESTRATOR_WORK_ROOT", str(tmp_path / "work"))
    monkeypatch.delenv("GITHUB_REF", raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_plan_prints_groups_and_assets(capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli.main(["plan", "--tag", "v2.0.0", "--os", "linux", "--engine", "wasm3"])

    out = capsys.readouterr().out
    assert rc == 0
    assert "release" in out and "publish" in out and "crates" in out
    assert "wascchost-v2.0.0-linux-wasm3-x86_64.zip" in out


def test_plan_uses_github_ref(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("GITHUB_REF", "refs/tags/v3.0.0")
    rc = cli.main(["plan", "--no-crates", "--no-engines", "--os", "windows-latest"])

    out = capsys.readouterr().out
    assert rc == 0
    assert "wascchost-v3.0.0-windows-x86_64.zip" in out


def test_branch_push_is_rejected(capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli.main(["plan", "--ref", "refs/heads/master"])
    assert rc == 2
    assert "Not a tag ref" in capsys.readouterr().out


def test_run_requires_repository(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.delenv("RELEASE_ORCHESTRATOR_REPOSITORY", raising=False)
    monkeypatch.delenv("GITHUB_REPOSITORY", raising=False)

    rc = cli.main(["run", "--tag", "v2.0.0"])
    assert rc == 2
    assert "No repository configured" in capsys.readouterr().out
