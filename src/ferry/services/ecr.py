"""Container registry (ECR) integration for ferry."""

import json
import re

from ..constants import REGISTRY_TIMEOUT
from .process import ToolError, ToolResult, run_tool

# Registry errors that a retry cannot fix, whatever else the output says.
_PERMANENT_MARKERS = (
    "name unknown",
    "manifest invalid",
    "repositorynotfoundexception",
    "invalid reference format",
)
_AUTH_STATUS = re.compile(r"\b(401|403)\b")
_AUTH_MARKERS = (
    "unauthorized",
    "authentication required",
    "no basic auth",
    "authorization token has expired",
)
_TRANSIENT_STATUS = re.compile(r"\b(50[0-4])\b")
_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection reset",
    "connection refused",
    "tls handshake",
    "i/o timeout",
    "temporary failure",
    "unexpected eof",
    "throttl",
    "toomanyrequests",
)


class RegistryError(Exception):
    """Registry operation failed.

    Attributes:
        transient: True if retrying may succeed (network, 5xx, auth expiry).
        status: HTTP-style status when one could be identified.
        output: Captured tool output.
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        status: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.status = status
        self.output = output


def classify_failure(result: ToolResult, action: str) -> RegistryError:
    """Turn a failed registry tool invocation into a RegistryError.

    Auth failures (401/403) and transient failures (5xx, network errors)
    are retryable; any other failure is permanent. Only the error stream is
    inspected, since progress output carries registry hosts and layer
    digests full of digit runs.
    """
    text = (result.stderr.strip() or result.stdout).lower()
    if any(marker in text for marker in _PERMANENT_MARKERS):
        return _permanent(result, action)

    auth = _AUTH_STATUS.search(text)
    if auth or any(marker in text for marker in _AUTH_MARKERS):
        status = int(auth.group(1)) if auth else 401
        return RegistryError(f"{action}: authentication failed", True, status, result.output)

    server = _TRANSIENT_STATUS.search(text)
    if server or any(marker in text for marker in _TRANSIENT_MARKERS):
        status = int(server.group(1)) if server else None
        return RegistryError(f"{action}: transient failure", True, status, result.output)
    return _permanent(result, action)


def _permanent(result: ToolResult, action: str) -> RegistryError:
    return RegistryError(f"{action}: failed (exit {result.exit_code})", False, 400, result.output)


class EcrClient:
    """Registry identity service and image catalogue, via the aws CLI."""

    def __init__(self, region: str, exec_path: str = "aws") -> None:
        self.region = region
        self.exec_path = exec_path

    def _run(self, args: list[str], action: str) -> ToolResult:
        try:
            result = run_tool(
                [self.exec_path, *args, "--region", self.region], timeout=REGISTRY_TIMEOUT
            )
        except ToolError as e:
            raise RegistryError(f"{action}: {e}", transient="timed out" in str(e)) from e
        return result

    def get_login_password(self) -> str:
        """Fetch a short-lived registry password.

        Raises:
            RegistryError: If the identity service call fails
        """
        action = "get-login-password"
        result = self._run(["ecr", "get-login-password"], action)
        if not result.ok:
            raise classify_failure(result, action)
        password = result.stdout.strip()
        if not password:
            raise RegistryError(f"{action}: empty password returned", transient=True)
        return password

    def image_exists(self, repository: str, tag: str) -> bool:
        """Check whether ``repository:tag`` is already in the registry.

        Raises:
            RegistryError: On failures other than the image being absent
        """
        action = "describe-images"
        result = self._run(
            [
                "ecr",
                "describe-images",
                "--repository-name",
                repository,
                "--image-ids",
                f"imageTag={tag}",
                "--output",
                "json",
            ],
            action,
        )
        if result.ok:
            try:
                data = json.loads(result.stdout or "{}")
            except json.JSONDecodeError as e:
                raise RegistryError(f"{action}: invalid JSON response") from e
            return bool(data.get("imageDetails"))
        if "ImageNotFoundException" in result.stderr:
            return False
        raise classify_failure(result, action)
