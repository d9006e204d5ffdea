from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReleaseRecord(BaseModel):
    """
    The hosted release created once per run. Read-only for every stage that
    uploads assets.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    tag: str = Field(..., min_length=1, examples=["v1.2.3"])
    name: str = Field(..., min_length=1)
    draft: bool = False
    prerelease: bool = True
    upload_url: str = Field(..., min_length=1)
    release_id: Optional[int] = None
    html_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "ReleaseRecord":
        return cls(
            tag=payload["tag_name"],
            name=payload.get("name") or payload["tag_name"],
            draft=bool(payload.get("draft", False)),
            prerelease=bool(payload.get("prerelease", False)),
            upload_url=payload["upload_url"],
            release_id=payload.get("id"),
            html_url=payload.get("html_url"),
        )


class UploadedAsset(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    content_type: str
    size: int = 0
    asset_id: Optional[int] = None
    download_url: Optional[str] = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "UploadedAsset":
        return cls(
            name=payload["name"],
            content_type=payload.get("content_type") or "application/octet-stream",
            size=int(payload.get("size") or 0),
            asset_id=payload.get("id"),
            download_url=payload.get("browser_download_url"),
        )
