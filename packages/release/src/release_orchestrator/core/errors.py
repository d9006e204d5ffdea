from __future__ import annotations

import traceback
from dataclasses import dataclass


class OrchestratorError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage failures.
    """

    exc_type: str
    message: str
    traceback: str


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback="".join(traceback.format_exception(exc)),
    )


class ConfigurationError(OrchestratorError):
    """
    Invalid pipeline definition: cyclic or undeclared dependency, bad matrix.
    Raised while building the graph, never while running it.
    """


class TriggerError(OrchestratorError):
    """The triggering ref is not a releasable version tag"""


class CheckoutError(OrchestratorError):
    """Source tree for a cell is not materialized"""


class BuildError(OrchestratorError):
    """
    Non-retryable: the external build failed, timed out or produced no binary.
    Compiler failures are source-level, so the owning cell just fails.
    """

    def __init__(self, message: str, *, returncode: int | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.timed_out = timed_out


class PackageError(OrchestratorError):
    """
    Non-retryable: archiver missing, input binary missing, or archiving failed.
    """

    def __init__(self, message: str, *, returncode: int | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.timed_out = timed_out


class RegistryPublishError(OrchestratorError):
    """Crate registry login or publish failed"""


class RemoteError(OrchestratorError):
    """
    Retryable failure talking to the hosting platform (timeouts, transport
    errors, unexpected statuses).
    """

    def __init__(self, message: str, *, operation: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class RemoteRetriesExceeded(RemoteError):
    def __init__(self, *, operation: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {last_error}",
            operation=operation,
            status_code=getattr(last_error, "status_code", None),
        )
        self.attempts = attempts
        self.last_error = last_error


class ArtifactNotFoundError(OrchestratorError):
    """No artifact has been published under that name"""


class ArtifactConflictError(OrchestratorError):
    """The artifact store is append-only; a name can be published once"""
