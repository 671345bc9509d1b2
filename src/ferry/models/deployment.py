"""Deployment target, resource definition and control-plane status models."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .run import Environment


class DeploymentTarget(BaseModel):
    """Cluster, service and definition family for one environment."""

    model_config = ConfigDict(frozen=True)

    environment: Environment
    cluster: str
    service: str
    family: str


class ResourceDefinition(BaseModel):
    """A patched resource definition ready for registration.

    ``document`` holds the full JSON object with its original key order.
    """

    family: str
    container_name: str
    image: str
    document: dict[str, Any]

    def to_json(self, indent: int = 2) -> str:
        """Serialize the document, preserving key order."""
        return json.dumps(self.document, indent=indent) + "\n"


class ServiceDeployment(BaseModel):
    """One deployment entry reported by the control plane."""

    id: str = ""
    revision_id: str
    status: str = "PRIMARY"
    running_count: int = 0
    desired_count: int = 0
    rollout_state: str | None = None


class ServiceStatus(BaseModel):
    """Service status as returned by DescribeService."""

    revision_id: str
    running_count: int
    desired_count: int
    deployments: list[ServiceDeployment] = Field(default_factory=list)

    def _current(self, operation_id: str) -> ServiceDeployment | None:
        return next((d for d in self.deployments if d.id == operation_id), None)

    def has_converged(self, revision_id: str, operation_id: str = "") -> bool:
        """Whether the service runs only ``revision_id`` at its desired count.

        Older deployments must have fully drained (no running tasks). When
        ``operation_id`` names the rollout's own deployment, every other
        deployment counts as older, including one on the same revision.
        """
        if self.revision_id != revision_id:
            return False
        if self.running_count != self.desired_count:
            return False
        if operation_id:
            current = self._current(operation_id)
            if current is None or current.revision_id != revision_id:
                return False
            older = [d for d in self.deployments if d.id != operation_id]
        else:
            older = [d for d in self.deployments if d.revision_id != revision_id]
        return all(d.running_count == 0 for d in older)

    def failed_rollout(self, revision_id: str, operation_id: str = "") -> ServiceDeployment | None:
        """Return the rollout's deployment if it failed.

        The deployment is matched by ``operation_id`` when given, otherwise by
        ``revision_id``.
        """
        for deployment in self.deployments:
            if operation_id:
                matches = deployment.id == operation_id
            else:
                matches = deployment.revision_id == revision_id
            if matches and deployment.rollout_state == "FAILED":
                return deployment
        return None


class DeploymentResult(BaseModel):
    """Result of a converged deploy or rollback."""

    revision_id: str
    operation_id: str
    polls: int = 0
    final_status: ServiceStatus | None = None
