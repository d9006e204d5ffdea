from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from release_orchestrator.pipeline.context import RunContext
from release_orchestrator.pipeline.events import EventType
from release_orchestrator.steps.checkout import verify_source_tree
from release_orchestrator.steps.registry import RegistryPublisher


@dataclass(frozen=True, slots=True)
class CratePublishStage:
    """Publishes the crate once every release asset is uploaded."""

    publisher: RegistryPublisher
    manifest: str = "Cargo.toml"
    stage_id: str = "crates-publish"

    def run(self, ctx: RunContext) -> dict[str, Any]:
        root = verify_source_tree(Path(self.publisher.source_dir), manifest=self.manifest)
        res = self.publisher.publish(cancel=ctx.cancel)
        ctx.emit(
            EventType.REGISTRY_PUBLISH,
            stage=self.stage_id,
            source_dir=str(root),
            duration_ms=res.duration_ms,
        )
        return {
            "source_dir": str(root),
            "command": " ".join(self.publisher.command()),
            "_metrics": {"duration_ms": res.duration_ms},
        }
