from .build import BASE_FEATURES, BinaryArtifact, BuildStep, feature_flags, run_setup_commands
from .checkout import verify_source_tree
from .commands import CommandResult, CommandRunner, run_command
from .naming import archive_file_name, asset_name, cell_asset_name
from .package import PackageStep
from .platforms import (
    PLATFORMS,
    ArchiveStrategy,
    PlatformProfile,
    PowerShellCompress7Zip,
    ZipJunkPaths,
    check_exhaustive,
    platform_for,
)
from .registry import RegistryPublisher

__all__ = [
    "BASE_FEATURES",
    "BinaryArtifact",
    "BuildStep",
    "feature_flags",
    "run_setup_commands",
    "verify_source_tree",
    "CommandResult",
    "CommandRunner",
    "run_command",
    "archive_file_name",
    "asset_name",
    "cell_asset_name",
    "PackageStep",
    "PLATFORMS",
    "ArchiveStrategy",
    "PlatformProfile",
    "PowerShellCompress7Zip",
    "ZipJunkPaths",
    "check_exhaustive",
    "platform_for",
    "RegistryPublisher",
]
