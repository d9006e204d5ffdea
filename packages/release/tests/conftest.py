from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Callable, Mapping, Sequence

import pytest
import structlog
from release_orchestrator.core import RemoteError, RunLayout, Settings
from release_orchestrator.pipeline import ArtifactStore, EventSink, RunContext
from release_orchestrator.remote import ReleaseRecord, UploadedAsset
from release_orchestrator.steps import CommandResult

_ARCHIVE_ARG = re.compile(r'-ArchiveFileName "([^"]+)"')


def _at(cwd: Path | None, p: str) -> Path:
    """Resolve `p` the way a child process started in `cwd` would."""
    path = Path(p)
    return path if path.is_absolute() or cwd is None else Path(cwd) / path


class FakeReleaseService:
    """
    In-memory hosting platform. `create_failures` / `upload_failures` make the
    first N calls raise RemoteError; `create_error` makes every call raise it.
    """

    def __init__(
        self,
        *,
        create_failures: int = 0,
        upload_failures: int = 0,
        create_error: Exception | None = None,
    ) -> None:
        self.artifacts = ArtifactStore()
        self.create_failures = create_failures
        self.upload_failures = upload_failures
        self.create_error = create_error
        self.create_calls: list[str] = []
        self.upload_calls: list[tuple[str, str]] = []
        self.uploaded: list[str] = []
        self._lock = threading.Lock()

    def create_release(self, tag: str, *, draft: bool = False, prerelease: bool = True) -> ReleaseRecord:
        with self._lock:
            self.create_calls.append(tag)
            if self.create_error is not None:
                raise self.create_error
            if self.create_failures > 0:
                self.create_failures -= 1
                raise RemoteError("create failed", operation="create_release", status_code=502)
        return ReleaseRecord(
            tag=tag,
            name=f"Release {tag}",
            draft=draft,
            prerelease=prerelease,
            upload_url="https://uploads.example.test/releases/1/assets{?name,label}",
            release_id=1,
        )

    def publish_artifact(self, name: str, payload: bytes | str | Path) -> None:
        self.artifacts.put(name, payload)

    def fetch_artifact(self, name: str) -> bytes:
        return self.artifacts.get(name).payload

    def upload_asset(
        self, upload_url: str, asset_path: Path, asset_name: str, content_type: str
    ) -> UploadedAsset:
        with self._lock:
            self.upload_calls.append((upload_url, asset_name))
            if self.upload_failures > 0:
                self.upload_failures -= 1
                raise RemoteError("upload failed", operation="upload_asset", status_code=500)
            self.uploaded.append(asset_name)
        size = Path(asset_path).stat().st_size
        return UploadedAsset(name=asset_name, content_type=content_type, size=size)


class FakeCommandRunner:
    """
    Pretends to be cargo, zip and powershell: creates the files each tool
    would produce. `fail` decides per argv whether the command exits 1.
    """

    def __init__(
        self,
        *,
        binary_name: str = "wascc-host",
        fail: Callable[[Sequence[str]], bool] | None = None,
    ) -> None:
        self.binary_name = binary_name
        self.fail = fail or (lambda argv: False)
        self.calls: list[list[str]] = []
        self.envs: list[Mapping[str, str] | None] = []
        self._lock = threading.Lock()

    def __call__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> CommandResult:
        args = [str(a) for a in argv]
        with self._lock:
            self.calls.append(args)
            self.envs.append(env)

        if self.fail(args):
            return CommandResult(
                argv=tuple(args), returncode=1, stdout="", stderr="error: boom", duration_ms=1
            )

        if args[1:2] == ["build"]:
            out = _at(cwd, args[args.index("--target-dir") + 1]) / "release"
            out.mkdir(parents=True, exist_ok=True)
            for name in (self.binary_name, f"{self.binary_name}.exe"):
                (out / name).write_bytes(b"\x7fELF")
        elif args[1:2] == ["-j"]:
            _at(cwd, args[2]).write_bytes(b"PK\x03\x04" + _at(cwd, args[3]).read_bytes())
        elif "Compress-7Zip" in args[-1]:
            m = _ARCHIVE_ARG.search(args[-1])
            assert m is not None
            _at(cwd, m.group(1)).write_bytes(b"PK\x03\x04")

        return CommandResult(argv=tuple(args), returncode=0, stdout="", stderr="", duration_ms=1)

    def matching(self, *words: str) -> list[list[str]]:
        return [c for c in self.calls if all(w in c for w in words)]


def fake_which(tool: str) -> str | None:
    return f"/usr/bin/{tool}"


@pytest.fixture
def release_service() -> FakeReleaseService:
    return FakeReleaseService()


@pytest.fixture
def make_release_service() -> Callable[..., FakeReleaseService]:
    return FakeReleaseService


@pytest.fixture
def make_runner() -> Callable[..., FakeCommandRunner]:
    return FakeCommandRunner


@pytest.fixture
def which() -> Callable[[str], str | None]:
    return fake_which


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    src.mkdir()
    (src / "Cargo.toml").write_text('[package]\nname = "wascc-host"\nversion = "2.0.0"\n')
    return src


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        run_root=tmp_path / "runs",
        work_root=tmp_path / "work",
        max_attempts=3,
        backoff_base=0.0,
        backoff_cap=0.0,
        max_parallel_cells=6,
    )


@pytest.fixture
def run_ctx(tmp_path: Path) -> RunContext:
    layout = RunLayout(run_root=tmp_path / "runs", work_root=tmp_path / "work", run_id="test")
    layout.ensure_dirs()
    return RunContext(
        run_id="test",
        layout=layout,
        logger=structlog.get_logger("test"),
        events=EventSink(layout.events_jsonl()),
        artifacts=ArtifactStore(),
    )
