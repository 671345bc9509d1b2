"""Error taxonomy for ferry pipeline runs.

Every error that ends a run is a FerryError subclass. Each kind maps to a
unique process exit code so calling automation can branch on exit status
without parsing output.
"""

from typing import Any


class FerryError(Exception):
    """Base exception for errors that terminate a pipeline run."""

    kind = "FerryError"
    exit_code = 1

    def __init__(self, message: str, diagnostics: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics = diagnostics or {}

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the error."""
        return {
            "kind": self.kind,
            "message": self.message,
            "exit_code": self.exit_code,
            "diagnostics": self.diagnostics,
        }


class ConfigError(FerryError):
    """Configuration is missing or invalid."""

    kind = "ConfigError"
    exit_code = 1


class BuildFailure(FerryError):
    """The image build tool failed."""

    kind = "BuildFailure"
    exit_code = 10


class PublishFailure(FerryError):
    """Pushing to the registry failed after retries were exhausted."""

    kind = "PublishFailure"
    exit_code = 11


class PatchTargetNotFound(FerryError):
    """No container entry matched the patch target."""

    kind = "PatchTargetNotFound"
    exit_code = 12


class PatchAmbiguous(FerryError):
    """More than one container entry matched the patch target."""

    kind = "PatchAmbiguous"
    exit_code = 13


class DefinitionInvalid(FerryError):
    """The resource definition does not have the expected shape."""

    kind = "DefinitionInvalid"
    exit_code = 14


class DeploymentRejected(FerryError):
    """The control plane refused the definition or the rollout failed."""

    kind = "DeploymentRejected"
    exit_code = 15


class DeploymentTimedOut(FerryError):
    """The rollout did not converge before the timeout.

    The rollout may still be in flight; nothing is rolled back.
    """

    kind = "DeploymentTimedOut"
    exit_code = 16

    def __init__(
        self,
        message: str,
        revision_id: str | None = None,
        diagnostics: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, diagnostics)
        self.revision_id = revision_id


class Cancelled(FerryError):
    """The run was cancelled at a stage boundary or while polling."""

    kind = "Cancelled"
    exit_code = 17


class LockContention(FerryError):
    """Another run holds the environment's lease."""

    kind = "LockContention"
    exit_code = 18


ERROR_KINDS: dict[str, type[FerryError]] = {
    cls.kind: cls
    for cls in (
        ConfigError,
        BuildFailure,
        PublishFailure,
        PatchTargetNotFound,
        PatchAmbiguous,
        DefinitionInvalid,
        DeploymentRejected,
        DeploymentTimedOut,
        Cancelled,
        LockContention,
    )
}
