"""Source revision lookup for ferry."""

import os
from pathlib import Path

from ..constants import GIT_TIMEOUT
from .process import ToolError, run_tool

# Set by the CI build service to the commit being built.
CI_REVISION_VARIABLE = "CODEBUILD_RESOLVED_SOURCE_VERSION"
SHORT_SHA_LENGTH = 7


class GitError(Exception):
    """Git operation failed."""

    pass


def get_head_sha(cwd: Path | None = None, short: bool = True) -> str:
    """Return the current HEAD commit.

    Raises:
        GitError: If git is unavailable or cwd is not a repository
    """
    cmd = ["git", "rev-parse", "HEAD"]
    if short:
        cmd = ["git", "rev-parse", f"--short={SHORT_SHA_LENGTH}", "HEAD"]
    try:
        result = run_tool(cmd, cwd=cwd, timeout=GIT_TIMEOUT)
    except ToolError as e:
        raise GitError(str(e)) from e
    if not result.ok:
        raise GitError(f"git rev-parse failed: {result.stderr.strip()}")
    return result.stdout.strip()


def resolve_revision(explicit: str | None, cwd: Path | None = None) -> str:
    """Resolve the source revision to deploy.

    Order: explicit value, the CI-provided commit, then git HEAD.
    """
    if explicit:
        return explicit
    ci_revision = os.environ.get(CI_REVISION_VARIABLE, "").strip()
    if ci_revision:
        return ci_revision[:SHORT_SHA_LENGTH]
    return get_head_sha(cwd)
