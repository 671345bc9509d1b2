"""External service integrations for ferry.

This package provides interfaces to external tools:
- process: Subprocess runner shared by every adapter
- docker: Image build, tag, login and push
- ecr: Registry credentials and image catalogue
- ecs: Definition registration, service updates and status
- git: Source revision lookup
"""

from .docker import DockerClient
from .ecr import EcrClient, RegistryError, classify_failure
from .ecs import ControlPlaneError, EcsClient, registration_payload
from .git import GitError, get_head_sha, resolve_revision
from .process import ToolError, ToolResult, run_tool

__all__ = [
    "ControlPlaneError",
    "DockerClient",
    "EcrClient",
    "EcsClient",
    "GitError",
    "RegistryError",
    "ToolError",
    "ToolResult",
    "classify_failure",
    "get_head_sha",
    "registration_payload",
    "resolve_revision",
    "run_tool",
]
