from __future__ import annotations

from release_orchestrator.pipeline.types import MatrixCell, OsLabel, os_label


def _part(value: str, what: str) -> str:
    v = str(value).strip()
    if not v or any(c in v for c in "/\\ "):
        raise ValueError(f"Invalid {what} for a file name: {value!r}")
    return v


def archive_file_name(prefix: str, os: OsLabel | str, engine: str | None = None) -> str:
    """Local archive name: `<prefix>-<os>[-<engine>].zip`."""
    parts = [_part(prefix, "prefix"), os_label(os).value]
    if engine:
        parts.append(_part(engine, "engine"))
    return "-".join(parts) + ".zip"


def asset_name(
    *,
    prefix: str,
    version: str,
    os: OsLabel | str,
    engine: str | None = None,
    arch: str = "x86_64",
) -> str:
    """
    Release asset name: `<prefix>-<version>-<os>[-<engine>]-<arch>.zip`.

    Pure function of its inputs; `os` may be a raw runner identifier.
    """
    parts = [_part(prefix, "prefix"), _part(version, "version"), os_label(os).value]
    if engine:
        parts.append(_part(engine, "engine"))
    parts.append(_part(arch, "arch"))
    return "-".join(parts) + ".zip"


def cell_asset_name(*, prefix: str, version: str, cell: MatrixCell, arch: str = "x86_64") -> str:
    return asset_name(prefix=prefix, version=version, os=cell.os, engine=cell.engine, arch=arch)
