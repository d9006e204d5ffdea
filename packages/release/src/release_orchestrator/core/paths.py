from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class RunLayout:
    """
    Canonical path layout for one pipeline run:

      {run_root}/{run_id}/events.jsonl
      {run_root}/{run_id}/run_report.json
      {run_root}/{run_id}/artifacts/{name}
      {work_root}/{run_id}/cells/{cell_id}/
      {work_root}/{run_id}/cells/{cell_id}/target/

    Both roots are made absolute on construction: external tools run with
    their own working directory and must never see a relative path.
    """

    run_root: Path
    work_root: Path
    run_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "run_root", Path(self.run_root).expanduser().resolve())
        object.__setattr__(self, "work_root", Path(self.work_root).expanduser().resolve())

    def run_dir(self) -> Path:
        return self.run_root / self.run_id

    def events_jsonl(self) -> Path:
        return self.run_dir() / "events.jsonl"

    def report_json(self) -> Path:
        return self.run_dir() / "run_report.json"

    def artifacts_dir(self) -> Path:
        return self.run_dir() / "artifacts"

    def cell_dir(self, cell_id: str) -> Path:
        return self.work_root / self.run_id / "cells" / cell_id

    def cell_target_dir(self, cell_id: str) -> Path:
        return self.cell_dir(cell_id) / "target"

    def ensure_dirs(self) -> None:
        for p in (self.run_dir(), self.artifacts_dir(), self.work_root / self.run_id):
            p.mkdir(parents=True, exist_ok=True)
