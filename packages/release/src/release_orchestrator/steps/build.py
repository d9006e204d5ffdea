from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

import structlog
from release_orchestrator.core import BuildError
from release_orchestrator.pipeline.types import MatrixCell

from .commands import CommandRunner, run_command
from .platforms import platform_for

log = structlog.get_logger(__name__)

BASE_FEATURES: tuple[str, ...] = ("bin", "manifest", "lattice")


def feature_flags(engine: str | None, extra: Iterable[str] = ()) -> list[str]:
    """
    Fixed features, then configured ones, then the cell's engine; de-duplicated
    in first-seen order so the same cell always builds the same string.
    """
    out: list[str] = []
    for f in (*BASE_FEATURES, *extra, *([engine] if engine else [])):
        f = str(f).strip()
        if f and f not in out:
            out.append(f)
    return out


@dataclass(frozen=True, slots=True)
class BinaryArtifact:
    cell: MatrixCell
    path: Path
    features: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class BuildStep:
    """
    Builds one matrix cell with the external compiler.

    Failures are never retried; the owning cell fails.
    """

    source_dir: Path
    binary_name: str
    extra_features: tuple[str, ...] = ()
    cargo: str = "cargo"
    profile: str = "release"
    timeout: float = 3600.0
    runner: CommandRunner = field(default=run_command)

    def command(self, cell: MatrixCell, target_dir: Path) -> list[str]:
        flags = " ".join(feature_flags(cell.engine, self.extra_features))
        argv = [self.cargo, "build", "--features", flags, "--target-dir", str(target_dir)]
        if self.profile == "release":
            argv.insert(2, "--release")
        else:
            argv[2:2] = ["--profile", self.profile]
        return argv

    def binary_path(self, cell: MatrixCell, target_dir: Path) -> Path:
        profile_dir = "release" if self.profile == "release" else self.profile
        name = platform_for(cell.os).binary_file_name(self.binary_name)
        return Path(target_dir) / profile_dir / name

    def build(
        self,
        cell: MatrixCell,
        *,
        target_dir: Path,
        cancel: threading.Event | None = None,
    ) -> BinaryArtifact:
        # cargo runs inside source_dir; a relative target dir would land there
        target_dir = Path(target_dir).resolve()
        argv = self.command(cell, target_dir)
        log.info("build.start", cell=cell.cell_id, features=argv[argv.index("--features") + 1])

        try:
            res = self.runner(
                argv, cwd=Path(self.source_dir).resolve(), timeout=self.timeout, cancel=cancel
            )
        except OSError as e:
            raise BuildError(f"{cell.cell_id}: could not start {self.cargo}: {e}") from e

        if not res.ok:
            raise BuildError(
                f"{cell.cell_id}: build failed ({res.describe()})",
                returncode=res.returncode,
                timed_out=res.timed_out,
            )

        out = self.binary_path(cell, target_dir)
        if not out.is_file():
            raise BuildError(f"{cell.cell_id}: build succeeded but {out} does not exist")

        return BinaryArtifact(
            cell=cell,
            path=out,
            features=tuple(feature_flags(cell.engine, self.extra_features)),
        )


def run_setup_commands(
    cell: MatrixCell,
    commands: Sequence[Sequence[str]],
    *,
    cwd: Path,
    timeout: float,
    runner: CommandRunner = run_command,
    cancel: threading.Event | None = None,
) -> int:
    """Run per-platform toolchain setup before a build. Returns commands run."""
    for argv in commands:
        try:
            res = runner(list(argv), cwd=cwd, timeout=timeout, cancel=cancel)
        except OSError as e:
            raise BuildError(f"{cell.cell_id}: setup command {argv[0]!r} failed: {e}") from e
        if not res.ok:
            raise BuildError(
                f"{cell.cell_id}: setup command {argv[0]!r} failed ({res.describe()})",
                returncode=res.returncode,
                timed_out=res.timed_out,
            )
    return len(commands)
