from __future__ import annotations

import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping

import structlog
from release_orchestrator.core import PackageError, safe_unlink, sha256_file
from release_orchestrator.pipeline.types import MatrixCell, OsLabel, ReleaseAsset

from .commands import CommandRunner, run_command
from .naming import archive_file_name, cell_asset_name
from .platforms import PLATFORMS, PlatformProfile, platform_for

log = structlog.get_logger(__name__)

Which = Callable[[str], str | None]


@dataclass(frozen=True, slots=True)
class PackageStep:
    """
    Archives a built binary with the archiver its platform dictates.

    Failures are never retried; the owning cell fails.
    """

    asset_prefix: str
    version: str
    arch: str = "x86_64"
    content_type: str = "application/zip"
    timeout: float = 300.0
    runner: CommandRunner = field(default=run_command)
    which: Which = field(default=shutil.which)
    platforms: Mapping[OsLabel, PlatformProfile] = field(default_factory=lambda: PLATFORMS)

    def _resolve_tool(self, cell: MatrixCell, profile: PlatformProfile) -> str:
        for tool in profile.archiver.tools:
            found = self.which(tool)
            if found:
                return found
        raise PackageError(
            f"{cell.cell_id}: archiver for {profile.archiver.name} not found "
            f"(looked for {list(profile.archiver.tools)})"
        )

    def _run(self, cell: MatrixCell, argv: list[str], cwd: Path, cancel: threading.Event | None) -> None:
        try:
            res = self.runner(argv, cwd=cwd, timeout=self.timeout, cancel=cancel)
        except OSError as e:
            raise PackageError(f"{cell.cell_id}: could not start {argv[0]}: {e}") from e
        if not res.ok:
            raise PackageError(
                f"{cell.cell_id}: archiving failed ({res.describe()})",
                returncode=res.returncode,
                timed_out=res.timed_out,
            )

    def package(
        self,
        cell: MatrixCell,
        binary_path: Path,
        *,
        out_dir: Path,
        cancel: threading.Event | None = None,
    ) -> ReleaseAsset:
        binary = Path(binary_path).resolve()
        if not binary.is_file():
            raise PackageError(f"{cell.cell_id}: binary to package does not exist: {binary}")

        profile = platform_for(cell.os, self.platforms)
        tool = self._resolve_tool(cell, profile)

        # the archiver runs inside out_dir, so every path it gets is absolute
        out_dir = Path(out_dir).resolve()
        out_dir.mkdir(parents=True, exist_ok=True)
        archive = out_dir / archive_file_name(self.asset_prefix, cell.os, cell.engine)
        # zip appends to an existing archive
        safe_unlink(archive)

        for setup in profile.archiver.setup:
            self._run(cell, [tool, *setup], out_dir, cancel)
        self._run(cell, profile.archiver.argv(tool, binary, archive), out_dir, cancel)

        if not archive.is_file():
            raise PackageError(f"{cell.cell_id}: archiver produced no file at {archive}")

        digest = sha256_file(archive)
        log.info(
            "package.done",
            cell=cell.cell_id,
            strategy=profile.archiver.name,
            archive=str(archive),
            bytes=digest.bytes,
        )
        return ReleaseAsset(
            cell=cell,
            archive_path=archive,
            asset_name=cell_asset_name(
                prefix=self.asset_prefix, version=self.version, cell=cell, arch=self.arch
            ),
            content_type=self.content_type,
            sha256=digest.sha256,
            bytes=digest.bytes,
        )
