from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

import structlog
from release_orchestrator.core import (
    ArtifactConflictError,
    ArtifactNotFoundError,
    atomic_write_bytes,
)

log = structlog.get_logger(__name__)

Payload = bytes | str | Path


@dataclass(frozen=True, slots=True)
class Artifact:
    name: str
    payload: bytes

    def text(self, encoding: str = "utf-8") -> str:
        return self.payload.decode(encoding)


def _as_bytes(payload: Payload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, Path):
        if not payload.is_file():
            raise FileNotFoundError(f"Artifact source file does not exist: {payload}")
        return payload.read_bytes()
    return str(payload).encode("utf-8")


def _check_name(name: str) -> str:
    n = str(name).strip()
    if not n or "/" in n or "\\" in n or n in (".", ".."):
        raise ValueError(f"Invalid artifact name: {name!r}")
    return n


class ArtifactStore:
    """
    Append-only keyed blob store shared by every stage of one run.

    A name is published exactly once; readers get a copy of the payload, so
    any number of cells can read the same artifact. When `root` is set each
    artifact is also written to `{root}/{name}`.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else None
        self._items: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, name: str, payload: Payload) -> Artifact:
        key = _check_name(name)
        data = _as_bytes(payload)

        with self._lock:
            if key in self._items:
                raise ArtifactConflictError(f"Artifact already published: {key}")
            if self.root is not None:
                atomic_write_bytes(self.root / key, data)
            self._items[key] = data

        log.debug("artifact.put", name=key, bytes=len(data))
        return Artifact(name=key, payload=data)

    def get(self, name: str) -> Artifact:
        key = _check_name(name)
        with self._lock:
            data = self._items.get(key)
        if data is None:
            raise ArtifactNotFoundError(f"No artifact named {key!r} has been published")
        return Artifact(name=key, payload=data)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._items

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._items)
