from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional, Sequence

from release_orchestrator.core import ConfigurationError


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """
    A reference to a file produced by a stage.
    """

    path: str
    bytes: int
    sha256: str
    content_type: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Event:
    """
    Structured event emitted by the pipeline.
    """

    type: str
    ts_utc: str
    run_id: str
    stage: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


class OsLabel(StrEnum):
    linux = "linux"
    macos = "macos"
    windows = "windows"


# raw runner identifiers are matched on their leading word: "ubuntu-latest",
# "windows-2022", "win64"; "winter" and "machine" are not platforms
_OS_FAMILIES: dict[str, OsLabel] = {
    "ubuntu": OsLabel.linux,
    "linux": OsLabel.linux,
    "macos": OsLabel.macos,
    "mac": OsLabel.macos,
    "osx": OsLabel.macos,
    "darwin": OsLabel.macos,
    "windows": OsLabel.windows,
    "win": OsLabel.windows,
}

_LEADING_WORD = re.compile(r"[a-z]+")


def os_label(raw: str | OsLabel) -> OsLabel:
    """Map a raw platform identifier to its friendly label."""
    if isinstance(raw, OsLabel):
        return raw
    m = _LEADING_WORD.match(str(raw).strip().lower())
    label = _OS_FAMILIES.get(m.group()) if m else None
    if label is None:
        raise ConfigurationError(f"Unknown platform identifier: {raw!r}")
    return label


@dataclass(frozen=True, slots=True)
class Dimension:
    """One declared matrix axis."""

    name: str
    values: tuple[str, ...]

    @classmethod
    def of(cls, name: str, values: Sequence[str | OsLabel]) -> "Dimension":
        return cls(name=name, values=tuple(str(v) for v in values))


@dataclass(frozen=True, slots=True)
class MatrixCell:
    """
    One combination of matrix values, in dimension declaration order.
    """

    coords: tuple[tuple[str, str], ...]

    @classmethod
    def of(cls, **values: str | OsLabel) -> "MatrixCell":
        coords = tuple((k, str(v)) for k, v in values.items() if v is not None)
        return cls(coords=coords)

    def value(self, name: str) -> str | None:
        for k, v in self.coords:
            if k == name:
                return v
        return None

    @property
    def os(self) -> OsLabel:
        v = self.value("os")
        if v is None:
            raise ConfigurationError(f"Matrix cell has no 'os' value: {self.coords}")
        return OsLabel(v)

    @property
    def engine(self) -> str | None:
        return self.value("engine")

    @property
    def cell_id(self) -> str:
        return "-".join(v for _, v in self.coords)

    def to_dict(self) -> dict[str, str]:
        return dict(self.coords)


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    """A packaged binary bound for one release, derived per cell."""

    cell: MatrixCell
    archive_path: Path
    asset_name: str
    content_type: str = "application/zip"
    sha256: Optional[str] = None
    bytes: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cell": self.cell.cell_id,
            "archive_path": str(self.archive_path),
            "asset_name": self.asset_name,
            "content_type": self.content_type,
            "sha256": self.sha256,
            "bytes": self.bytes,
        }
