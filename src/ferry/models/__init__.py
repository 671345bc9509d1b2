"""Pydantic data models for ferry.

This package defines the data structures passed between pipeline stages:
- Run state and the stage state machine (PipelineRun, Stage, StageEvent)
- Image references (ArtifactReference, PublishedReference)
- Deployment inputs and control-plane views (ResourceDefinition,
  DeploymentTarget, ServiceStatus, DeploymentResult)
- Environment leases (Lease)

Example:
    >>> from ferry.models import ArtifactReference
    >>> ref = ArtifactReference(registry="r.example", repository="web", tag="abc1234")
    >>> ref.image
    'r.example/web:abc1234'
"""

from .artifact import ArtifactReference, PublishedReference, RegistryCredentials
from .deployment import (
    DeploymentResult,
    DeploymentTarget,
    ResourceDefinition,
    ServiceDeployment,
    ServiceStatus,
)
from .lease import Lease
from .run import (
    TERMINAL_STAGES,
    VALID_TRANSITIONS,
    Environment,
    PipelineRun,
    RunStatus,
    Stage,
    StageEvent,
    status_for_stage,
)

__all__ = [
    "TERMINAL_STAGES",
    "VALID_TRANSITIONS",
    "ArtifactReference",
    "DeploymentResult",
    "DeploymentTarget",
    "Environment",
    "Lease",
    "PipelineRun",
    "PublishedReference",
    "RegistryCredentials",
    "ResourceDefinition",
    "RunStatus",
    "ServiceDeployment",
    "ServiceStatus",
    "Stage",
    "StageEvent",
    "status_for_stage",
]
