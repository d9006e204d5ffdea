from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Final, Mapping

from release_orchestrator.core import ConfigurationError
from release_orchestrator.pipeline.types import OsLabel


@dataclass(frozen=True, slots=True)
class ArchiveStrategy:
    """
    How one platform turns a single binary into a `.zip` archive.

    `tools` lists acceptable executables in order of preference; the first
    one found on PATH is used as argv[0].
    """

    name: str
    tools: tuple[str, ...]
    setup: tuple[tuple[str, ...], ...] = ()

    def argv(self, tool: str, binary: Path, archive: Path) -> list[str]:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class PowerShellCompress7Zip(ArchiveStrategy):
    def argv(self, tool: str, binary: Path, archive: Path) -> list[str]:
        script = f'Compress-7Zip "{binary}" -ArchiveFileName "{archive}" -Format Zip'
        return [tool, "-NoProfile", "-NonInteractive", "-Command", script]


@dataclass(frozen=True, slots=True)
class ZipJunkPaths(ArchiveStrategy):
    def argv(self, tool: str, binary: Path, archive: Path) -> list[str]:
        return [tool, "-j", str(archive), str(binary)]


@dataclass(frozen=True, slots=True)
class PlatformProfile:
    os: OsLabel
    runner_image: str
    archiver: ArchiveStrategy
    exe_suffix: str = ""

    def binary_file_name(self, binary_name: str) -> str:
        return f"{binary_name}{self.exe_suffix}"


_PS_MODULE_SETUP: Final = (
    (
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        "if (-not (Get-Module -ListAvailable -Name 7Zip4PowerShell)) "
        "{ Install-Module 7Zip4PowerShell -Force -Scope CurrentUser }",
    ),
)

PLATFORMS: Final[Mapping[OsLabel, PlatformProfile]] = MappingProxyType(
    {
        OsLabel.windows: PlatformProfile(
            os=OsLabel.windows,
            runner_image="windows-latest",
            exe_suffix=".exe",
            archiver=PowerShellCompress7Zip(
                name="windows-7zip",
                tools=("powershell", "pwsh"),
                setup=_PS_MODULE_SETUP,
            ),
        ),
        OsLabel.linux: PlatformProfile(
            os=OsLabel.linux,
            runner_image="ubuntu-latest",
            archiver=ZipJunkPaths(name="posix-zip-linux", tools=("zip",)),
        ),
        OsLabel.macos: PlatformProfile(
            os=OsLabel.macos,
            runner_image="macos-latest",
            archiver=ZipJunkPaths(name="posix-zip-macos", tools=("zip",)),
        ),
    }
)


def check_exhaustive(table: Mapping[OsLabel, object]) -> None:
    missing = sorted(set(OsLabel) - set(table))
    if missing:
        raise ConfigurationError(f"Platform table has no entry for: {missing}")


check_exhaustive(PLATFORMS)


def platform_for(os: OsLabel, table: Mapping[OsLabel, PlatformProfile] = PLATFORMS) -> PlatformProfile:
    try:
        return table[OsLabel(os)]
    except KeyError as e:
        raise ConfigurationError(f"No platform profile for {os!r}") from e
