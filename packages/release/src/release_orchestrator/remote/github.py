from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable

import httpx
import structlog
from release_orchestrator.core import RemoteError
from release_orchestrator.pipeline.artifacts import ArtifactStore, Payload

from .http import body_snippet, make_http_client
from .models import ReleaseRecord, UploadedAsset

log = structlog.get_logger(__name__)

_URI_TEMPLATE_SUFFIX = re.compile(r"\{[^}]*\}$")
_REPOSITORY = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def expand_upload_url(template: str) -> str:
    """
    Strip the RFC 6570 query template GitHub appends to `upload_url`,
    e.g. `.../assets{?name,label}` -> `.../assets`.
    """
    url = _URI_TEMPLATE_SUFFIX.sub("", template.strip())
    if not url:
        raise ValueError(f"Empty upload url from template: {template!r}")
    return url


class GitHubReleaseService:
    """
    ReleaseService backed by the GitHub REST API.

    Artifacts are exchanged through the run's ArtifactStore, which stands in
    for the workflow-artifact API between stages of the same run.
    """

    def __init__(
        self,
        *,
        repository: str,
        artifacts: ArtifactStore,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        client: httpx.Client | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not _REPOSITORY.match(repository or ""):
            raise ValueError(f"repository must look like 'owner/name', got {repository!r}")
        self.repository = repository
        self.artifacts = artifacts
        self.api_url = api_url.rstrip("/")

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self.client = client or make_http_client(
            timeout=timeout, headers=headers, transport=transport
        )
        if not self._owns_client:
            self.client.headers.update(headers)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "GitHubReleaseService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _request(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        expected: Iterable[int],
        **kw: Any,
    ) -> httpx.Response:
        try:
            resp = self.client.request(method, url, **kw)
        except httpx.TimeoutException as e:
            raise RemoteError(
                f"{method} {url} timed out: {e}", operation=operation
            ) from e
        except httpx.HTTPError as e:
            raise RemoteError(
                f"{method} {url} failed: {e!r}", operation=operation
            ) from e

        if resp.status_code not in set(expected):
            snippet = body_snippet(resp)
            msg = f"HTTP {resp.status_code} for {method} {url}"
            if snippet:
                msg += f" (body: {snippet})"
            raise RemoteError(msg, operation=operation, status_code=resp.status_code)
        return resp

    def create_release(
        self, tag: str, *, draft: bool = False, prerelease: bool = True
    ) -> ReleaseRecord:
        url = f"{self.api_url}/repos/{self.repository}/releases"
        resp = self._request(
            "create_release",
            "POST",
            url,
            expected=(201,),
            json={
                "tag_name": tag,
                "name": f"Release {tag}",
                "draft": draft,
                "prerelease": prerelease,
            },
        )
        try:
            record = ReleaseRecord.from_api(resp.json())
        except (ValueError, KeyError) as e:
            raise RemoteError(
                f"Unexpected create-release response: {e}", operation="create_release"
            ) from e

        log.info("release.created", tag=record.tag, release_id=record.release_id)
        return record

    def publish_artifact(self, name: str, payload: Payload) -> None:
        self.artifacts.put(name, payload)

    def fetch_artifact(self, name: str) -> bytes:
        return self.artifacts.get(name).payload

    def upload_asset(
        self,
        upload_url: str,
        asset_path: Path,
        asset_name: str,
        content_type: str,
    ) -> UploadedAsset:
        data = Path(asset_path).read_bytes()
        resp = self._request(
            "upload_asset",
            "POST",
            expand_upload_url(upload_url),
            expected=(201,),
            params={"name": asset_name},
            content=data,
            headers={"Content-Type": content_type},
        )
        try:
            uploaded = UploadedAsset.from_api(resp.json())
        except (ValueError, KeyError) as e:
            raise RemoteError(
                f"Unexpected upload-asset response: {e}", operation="upload_asset"
            ) from e

        log.info("asset.uploaded", name=uploaded.name, bytes=len(data))
        return uploaded
