"""Docker CLI integration for ferry."""

from pathlib import Path

from ..constants import BUILD_TIMEOUT, PUSH_TIMEOUT, REGISTRY_TIMEOUT
from .process import ToolResult, run_tool


class DockerClient:
    """Thin wrapper over the docker CLI.

    Every method returns the ToolResult; interpreting failures is left to
    the Builder and Publisher stages.
    """

    def __init__(self, exec_path: str = "docker") -> None:
        self.exec_path = exec_path

    def build(
        self,
        context: Path,
        dockerfile: Path,
        tag: str,
        build_args: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> ToolResult:
        """Build an image from ``context`` and tag it locally."""
        cmd = [self.exec_path, "build", "-f", str(dockerfile), "-t", tag]
        for key, value in (build_args or {}).items():
            cmd.extend(["--build-arg", f"{key}={value}"])
        for key, value in (labels or {}).items():
            cmd.extend(["--label", f"{key}={value}"])
        cmd.append(str(context))
        return run_tool(cmd, cwd=context, timeout=timeout or BUILD_TIMEOUT)

    def tag(self, source: str, target: str) -> ToolResult:
        return run_tool([self.exec_path, "tag", source, target], timeout=REGISTRY_TIMEOUT)

    def login(self, registry: str, username: str, password: str) -> ToolResult:
        """Log in with the password on stdin so it never appears in argv."""
        return run_tool(
            [self.exec_path, "login", "--username", username, "--password-stdin", registry],
            timeout=REGISTRY_TIMEOUT,
            input_text=password,
        )

    def push(self, image: str) -> ToolResult:
        return run_tool([self.exec_path, "push", image], timeout=PUSH_TIMEOUT)

    def image_id(self, image: str) -> str | None:
        """Return the local image ID, or None if the image is not present."""
        result = run_tool(
            [self.exec_path, "image", "inspect", "--format", "{{.Id}}", image],
            timeout=REGISTRY_TIMEOUT,
        )
        if not result.ok:
            return None
        return result.stdout.strip() or None
