from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from release_orchestrator.pipeline.context import RunContext
from release_orchestrator.pipeline.events import EventType
from release_orchestrator.remote.service import ReleaseService

RELEASE_URL_ARTIFACT = "release_url"


@dataclass(frozen=True, slots=True)
class CreateReleaseStage:
    """
    Creates the hosted release and publishes its upload URL as the
    `release_url` artifact for the publish cells.
    """

    service: ReleaseService
    tag: str
    draft: bool = False
    prerelease: bool = True
    stage_id: str = "create-release"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        record = self.service.create_release(
            self.tag, draft=self.draft, prerelease=self.prerelease
        )
        ctx.emit(
            EventType.RELEASE_CREATED,
            stage=self.stage_id,
            tag=record.tag,
            release_id=record.release_id,
            prerelease=record.prerelease,
        )

        self.service.publish_artifact(RELEASE_URL_ARTIFACT, record.upload_url)
        ctx.emit(EventType.ARTIFACT_PUBLISHED, stage=self.stage_id, name=RELEASE_URL_ARTIFACT)

        return {
            "tag": record.tag,
            "name": record.name,
            "release_id": record.release_id,
            "html_url": record.html_url,
            "upload_url": record.upload_url,
        }
