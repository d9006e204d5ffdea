from .config import Settings, load_settings
from .errors import (
    ArtifactConflictError,
    ArtifactNotFoundError,
    BuildError,
    CheckoutError,
    ConfigurationError,
    OrchestratorError,
    PackageError,
    RegistryPublishError,
    RemoteError,
    RemoteRetriesExceeded,
    StageError,
    TriggerError,
    stage_error_from_exc,
)
from .fs import atomic_write_bytes, atomic_write_text, ensure_parent, safe_unlink
from .hashing import FileDigest, sha256_file
from .json import atomic_write_json, read_json, stable_json_dumps
from .logging import ILogger, bind, configure_logging, get_logger
from .paths import RunLayout
from .provenance import RunProvenance, Timer, new_run_id
from .time import monotonic_ms, utc_now_iso

__all__ = [
    "Settings",
    "load_settings",
    "OrchestratorError",
    "ConfigurationError",
    "TriggerError",
    "CheckoutError",
    "BuildError",
    "PackageError",
    "RegistryPublishError",
    "RemoteError",
    "RemoteRetriesExceeded",
    "ArtifactNotFoundError",
    "ArtifactConflictError",
    "StageError",
    "stage_error_from_exc",
    "atomic_write_bytes",
    "atomic_write_text",
    "ensure_parent",
    "safe_unlink",
    "FileDigest",
    "sha256_file",
    "atomic_write_json",
    "read_json",
    "stable_json_dumps",
    "ILogger",
    "bind",
    "configure_logging",
    "get_logger",
    "RunLayout",
    "RunProvenance",
    "Timer",
    "new_run_id",
    "monotonic_ms",
    "utc_now_iso",
]
