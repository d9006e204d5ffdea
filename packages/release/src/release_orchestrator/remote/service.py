from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

import structlog
from release_orchestrator.core import RemoteError, RemoteRetriesExceeded
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from .http import DeterministicExponentialBackoff
from .models import ReleaseRecord, UploadedAsset

log = structlog.get_logger(__name__)

T = TypeVar("T")


@runtime_checkable
class ReleaseService(Protocol):
    """
    Fixed contract of the hosting platform. Every operation may raise
    RemoteError.
    """

    def create_release(
        self, tag: str, *, draft: bool = False, prerelease: bool = True
    ) -> ReleaseRecord: ...

    def publish_artifact(self, name: str, payload: bytes | str | Path) -> None: ...

    def fetch_artifact(self, name: str) -> bytes: ...

    def upload_asset(
        self,
        upload_url: str,
        asset_path: Path,
        asset_name: str,
        content_type: str,
    ) -> UploadedAsset: ...


class RetryingReleaseService:
    """
    Wraps a ReleaseService so that every RemoteError is retried up to
    `max_attempts` times with deterministic exponential backoff. Any other
    exception propagates on the first occurrence.
    """

    def __init__(
        self,
        inner: ReleaseService,
        *,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_cap: float = 4.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.inner = inner
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._sleep = sleep

    def _retrying(self, operation: str) -> Retrying:
        def _before_sleep(retry_state) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            sleep = retry_state.next_action.sleep if retry_state.next_action else None
            log.warning(
                "remote.retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                sleep_s=sleep,
                error=repr(exc) if exc else None,
            )

        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=DeterministicExponentialBackoff(
                base=self.backoff_base, cap=self.backoff_cap
            ),
            retry=retry_if_exception_type(RemoteError),
            reraise=False,
            before_sleep=_before_sleep,
            sleep=self._sleep,
        )

    def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kw: Any) -> T:
        try:
            for attempt in self._retrying(operation):
                with attempt:
                    return fn(*args, **kw)
        except RetryError as re:
            last = re.last_attempt.exception()
            raise RemoteRetriesExceeded(
                operation=operation,
                attempts=re.last_attempt.attempt_number,
                last_error=last or RemoteError("unknown", operation=operation),
            ) from last

        raise RuntimeError("unreachable")

    def create_release(
        self, tag: str, *, draft: bool = False, prerelease: bool = True
    ) -> ReleaseRecord:
        return self._call(
            "create_release",
            self.inner.create_release,
            tag,
            draft=draft,
            prerelease=prerelease,
        )

    def publish_artifact(self, name: str, payload: bytes | str | Path) -> None:
        self._call("publish_artifact", self.inner.publish_artifact, name, payload)

    def fetch_artifact(self, name: str) -> bytes:
        return self._call("fetch_artifact", self.inner.fetch_artifact, name)

    def upload_asset(
        self,
        upload_url: str,
        asset_path: Path,
        asset_name: str,
        content_type: str,
    ) -> UploadedAsset:
        return self._call(
            "upload_asset",
            self.inner.upload_asset,
            upload_url,
            asset_path,
            asset_name,
            content_type,
        )
