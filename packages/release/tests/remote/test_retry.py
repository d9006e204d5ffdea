from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from release_orchestrator.core import ArtifactNotFoundError, RemoteError, RemoteRetriesExceeded
from release_orchestrator.remote import DeterministicExponentialBackoff, RetryingReleaseService


def _wrap(inner, sleeps: list[float] | None = None, **kw) -> RetryingReleaseService:
    record = sleeps.append if sleeps is not None else (lambda s: None)
    return RetryingReleaseService(inner, max_attempts=3, backoff_base=0.5, sleep=record, **kw)


def test_transient_remote_errors_are_retried(make_release_service) -> None:
    inner = make_release_service(create_failures=2)
    sleeps: list[float] = []

    record = _wrap(inner, sleeps).create_release("v2.0.0")

    assert record.tag == "v2.0.0"
    assert len(inner.create_calls) == 3
    assert sleeps == [0.0, 0.5]


def test_retries_are_bounded(make_release_service) -> None:
    inner = make_release_service(
        create_error=RemoteError("bad gateway", operation="create_release", status_code=502)
    )

    with pytest.raises(RemoteRetriesExceeded) as ei:
        _wrap(inner).create_release("v2.0.0")

    assert len(inner.create_calls) == 3
    assert ei.value.attempts == 3
    assert ei.value.status_code == 502
    assert ei.value.operation == "create_release"


def test_other_errors_are_not_retried(make_release_service) -> None:
    inner = make_release_service(create_error=ValueError("tag already exists"))

    with pytest.raises(ValueError):
        _wrap(inner).create_release("v2.0.0")
    assert len(inner.create_calls) == 1


def test_upload_is_retried_then_succeeds(make_release_service, tmp_path: Path) -> None:
    inner = make_release_service(upload_failures=1)
    archive = tmp_path / "a.zip"
    archive.write_bytes(b"PK")

    uploaded = _wrap(inner).upload_asset("https://u/assets", archive, "a.zip", "application/zip")

    assert uploaded.size == 2
    assert [name for _, name in inner.upload_calls] == ["a.zip", "a.zip"]
    assert inner.uploaded == ["a.zip"]


def test_missing_artifact_is_not_retried(make_release_service) -> None:
    with pytest.raises(ArtifactNotFoundError):
        _wrap(make_release_service()).fetch_artifact("release_url")


def test_backoff_is_deterministic_and_capped() -> None:
    wait = DeterministicExponentialBackoff(base=0.5, cap=2.0)
    got = [wait(SimpleNamespace(attempt_number=n)) for n in range(1, 7)]
    assert got == [0.0, 0.5, 1.0, 2.0, 2.0, 2.0]


def test_max_attempts_must_be_positive(make_release_service) -> None:
    with pytest.raises(ValueError):
        RetryingReleaseService(make_release_service(), max_attempts=0)
