"""External tool runner for ferry."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """Error executing an external tool (not found or timed out)."""

    pass


@dataclass(frozen=True)
class ToolResult:
    """Captured result of an external tool invocation."""

    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined output formatted for diagnostics."""
        output = f"exit_code: {self.exit_code}\n\n"
        output += "=== stdout ===\n"
        output += self.stdout
        output += "\n=== stderr ===\n"
        output += self.stderr
        return output


def run_tool(
    args: list[str],
    cwd: Path | None = None,
    timeout: int | None = None,
    input_text: str | None = None,
) -> ToolResult:
    """Run an external tool and capture its output.

    A non-zero exit is reported through ToolResult, not raised; callers
    decide what a failure means for their stage.

    Args:
        args: Command and arguments
        cwd: Working directory
        timeout: Optional timeout in seconds
        input_text: Optional text written to the tool's stdin

    Returns:
        ToolResult with exit code and captured stdout/stderr

    Raises:
        ToolError: If the executable is missing or the command times out
    """
    logger.debug("Running %s", " ".join(args[:3]))
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolError(f"{args[0]} timed out after {timeout} seconds") from e
    except FileNotFoundError:
        raise ToolError(f"Command not found: {args[0]}") from None

    return ToolResult(
        args=tuple(args),
        exit_code=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )
