from __future__ import annotations

from pathlib import Path

from release_orchestrator.core import errors, paths, provenance, time


def test_run_layout_paths_and_dirs(tmp_path: Path) -> None:
    layout = paths.RunLayout(run_root=tmp_path / "runs", work_root=tmp_path / "work", run_id="r1")

    assert layout.events_jsonl() == tmp_path / "runs" / "r1" / "events.jsonl"
    assert layout.report_json() == tmp_path / "runs" / "r1" / "run_report.json"
    assert layout.cell_target_dir("linux-wasm3") == (
        tmp_path / "work" / "r1" / "cells" / "linux-wasm3" / "target"
    )

    layout.ensure_dirs()
    assert layout.artifacts_dir().is_dir()
    assert (tmp_path / "work" / "r1").is_dir()


def test_stage_error_and_run_id() -> None:
    try:
        raise ValueError("boom")
    except Exception as exc:
        err = errors.stage_error_from_exc(exc)
    assert err.exc_type == "ValueError"
    assert "boom" in err.message
    assert "ValueError" in err.traceback

    rid1, rid2 = provenance.new_run_id(), provenance.new_run_id()
    assert rid1 != rid2 and len(rid1) == 32


def test_run_provenance_to_dict() -> None:
    p = provenance.RunProvenance(run_id="r1", started_at_utc="2026-01-01T00:00:00Z")
    d = p.to_dict()
    assert d["run_id"] == "r1"
    assert d["pid"] > 0
    assert {"hostname", "python", "platform"} <= set(d)


def test_timer_records_duration() -> None:
    with provenance.Timer() as t:
        pass
    assert t.duration_ms is not None and t.duration_ms >= 0


def test_time_helpers_format() -> None:
    assert time.utc_now_iso().endswith("Z")
    assert time.monotonic_ms() <= time.monotonic_ms()


def test_remote_retries_exceeded_keeps_last_status() -> None:
    last = errors.RemoteError("bad gateway", operation="upload_asset", status_code=502)
    exc = errors.RemoteRetriesExceeded(operation="upload_asset", attempts=3, last_error=last)
    assert isinstance(exc, errors.RemoteError)
    assert exc.status_code == 502
    assert exc.attempts == 3
    assert "after 3 attempt(s)" in str(exc)


def test_run_layout_makes_relative_roots_absolute(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    layout = paths.RunLayout(run_root=Path("_runs"), work_root=Path("_work"), run_id="r1")

    assert layout.run_root == tmp_path / "_runs"
    assert layout.work_root == tmp_path / "_work"
    assert layout.cell_target_dir("linux-wasm3").is_absolute()
    assert layout.artifacts_dir().is_absolute()
