from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from release_orchestrator.core import RegistryPublishError

from .commands import CommandResult, CommandRunner, run_command

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RegistryPublisher:
    """
    Publishes the crate with `cargo publish --no-verify`.

    The registry token is handed to cargo via CARGO_REGISTRY_TOKEN rather than
    `cargo login`, so it never appears on a command line.
    """

    source_dir: Path
    token: str | None = field(default=None, repr=False)
    cargo: str = "cargo"
    verify: bool = False
    dry_run: bool = False
    timeout: float = 900.0
    runner: CommandRunner = field(default=run_command)

    def command(self) -> list[str]:
        argv = [self.cargo, "publish"]
        if not self.verify:
            argv.append("--no-verify")
        if self.dry_run:
            argv.append("--dry-run")
        return argv

    def publish(self, *, cancel: threading.Event | None = None) -> CommandResult:
        env = {"CARGO_REGISTRY_TOKEN": self.token} if self.token else None
        log.info("registry.publish", source_dir=str(self.source_dir), dry_run=self.dry_run)

        try:
            res = self.runner(
                self.command(), cwd=self.source_dir, env=env, timeout=self.timeout, cancel=cancel
            )
        except OSError as e:
            raise RegistryPublishError(f"could not start {self.cargo}: {e}") from e

        if not res.ok:
            raise RegistryPublishError(f"cargo publish failed ({res.describe()})")
        return res
