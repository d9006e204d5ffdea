from __future__ import annotations

import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

import structlog
from release_orchestrator.core import Timer

log = structlog.get_logger(__name__)

_TAIL_CHARS = 4000


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    def describe(self) -> str:
        if self.timed_out:
            return f"timed out after {self.duration_ms} ms"
        if self.cancelled:
            return "cancelled"
        tail = (self.stderr or self.stdout).strip().splitlines()[-5:]
        detail = " | ".join(tail)
        return f"exit code {self.returncode}" + (f": {detail}" if detail else "")


class CommandRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CommandResult: ...


def _terminate(proc: subprocess.Popen[str]) -> tuple[str, str]:
    proc.terminate()
    try:
        return proc.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()
        return proc.communicate()


def run_command(
    argv: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
    poll_interval: float = 0.2,
) -> CommandResult:
    """
    Run an external command to completion, a timeout, or cancellation.

    The process is terminated (then killed) once `timeout` seconds pass or
    `cancel` is set. Raises FileNotFoundError when the executable is missing.
    """
    args = tuple(str(a) for a in argv)
    full_env = {**os.environ, **env} if env else None

    log.debug("command.start", argv=args[:3], cwd=str(cwd) if cwd else None)
    timed_out = cancelled = False
    with Timer() as t:
        proc = subprocess.Popen(
            args,
            cwd=str(cwd) if cwd else None,
            env=full_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        elapsed = 0.0
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=poll_interval)
                break
            except subprocess.TimeoutExpired:
                elapsed += poll_interval
                if cancel is not None and cancel.is_set():
                    cancelled = True
                elif timeout is not None and elapsed >= timeout:
                    timed_out = True
                else:
                    continue
                stdout, stderr = _terminate(proc)
                break

    res = CommandResult(
        argv=args,
        returncode=proc.returncode,
        stdout=(stdout or "")[-_TAIL_CHARS:],
        stderr=(stderr or "")[-_TAIL_CHARS:],
        duration_ms=t.duration_ms or 0,
        timed_out=timed_out,
        cancelled=cancelled,
    )
    log.debug(
        "command.finish",
        program=args[0] if args else None,
        returncode=res.returncode,
        timed_out=timed_out,
        cancelled=cancelled,
        duration_ms=res.duration_ms,
    )
    return res
