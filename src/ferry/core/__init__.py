"""Core pipeline logic for ferry.

- builder: Artifact Builder (image build for a revision)
- publisher: Registry Publisher with bounded exponential backoff
- patcher: Definition Patcher (single-container image patch)
- driver: Deployment Driver (register, roll out, poll, rollback)
- lease: Per-environment advisory lease
- run_store: Run identifiers and archive of finished runs
- coordinator: Pipeline Coordinator tying the stages together
"""

from .builder import ArtifactBuilder
from .coordinator import InvalidTransitionError, Pipeline, build_pipeline
from .driver import ControlPlane, DeploymentDriver
from .lease import (
    acquire_lease,
    get_current_lease,
    is_stale_lease,
    release_lease,
    update_heartbeat,
    wait_for_lease,
)
from .patcher import load_template, patch, validate_definition, write_definition
from .publisher import RegistryPublisher, RetryPolicy
from .run_store import archive_run, generate_run_id, get_run_dir, latest_run, list_runs, load_run

__all__ = [
    "ArtifactBuilder",
    "ControlPlane",
    "DeploymentDriver",
    "InvalidTransitionError",
    "Pipeline",
    "RegistryPublisher",
    "RetryPolicy",
    "acquire_lease",
    "archive_run",
    "build_pipeline",
    "generate_run_id",
    "get_current_lease",
    "get_run_dir",
    "is_stale_lease",
    "latest_run",
    "list_runs",
    "load_run",
    "load_template",
    "patch",
    "release_lease",
    "update_heartbeat",
    "validate_definition",
    "wait_for_lease",
    "write_definition",
]
