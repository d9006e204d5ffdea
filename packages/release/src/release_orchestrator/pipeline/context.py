from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from release_orchestrator.core import ILogger, RunLayout, sha256_file

from .artifacts import ArtifactStore
from .events import EventSink, EventType, make_event
from .types import ArtifactRef


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stage groups and matrix cells for a single run.

    Everything here is either immutable or safe for concurrent use: the
    artifact store and the event sink serialize their writes.
    """

    run_id: str
    layout: RunLayout
    logger: ILogger
    events: EventSink
    artifacts: ArtifactStore
    cancel: threading.Event = field(default_factory=threading.Event)

    # optional free-form metadata
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def stage_logger(self, stage: str, **bindings: Any) -> ILogger:
        return self.logger.bind(stage=stage, **bindings)

    def emit(self, event: EventType | str, *, stage: str | None = None, **kw: Any) -> None:
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.events.emit(
            make_event(event_type=event_value, run_id=self.run_id, stage=stage, **kw)
        )
        # Keep event chatter at debug level to leave console logs readable.
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)

    def record_artifact(
        self,
        *,
        stage: str,
        path: Path,
        content_type: str | None = None,
        rel_to: Path | None = None,
    ) -> ArtifactRef:
        p = Path(path)
        digest = sha256_file(p)
        rel = str(p if rel_to is None else p.relative_to(rel_to))
        art = ArtifactRef(
            path=rel, bytes=digest.bytes, sha256=digest.sha256, content_type=content_type
        )
        self.emit(
            EventType.ARTIFACT_WRITTEN,
            stage=stage,
            path=art.path,
            bytes=art.bytes,
            sha256=art.sha256,
            content_type=art.content_type,
        )
        return art
