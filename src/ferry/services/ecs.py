"""Orchestration control plane (ECS) integration for ferry."""

import json
import re
from typing import Any

from ..constants import CONTROL_PLANE_TIMEOUT
from ..models import ServiceDeployment, ServiceStatus
from .process import ToolError, run_tool

# Fields present in describe-task-definition output that registration rejects.
READ_ONLY_FIELDS = (
    "taskDefinitionArn",
    "revision",
    "status",
    "requiresAttributes",
    "compatibilities",
    "registeredAt",
    "registeredBy",
    "deregisteredAt",
)

_AWS_ERROR = re.compile(r"An error occurred \((?P<code>[^)]+)\)")


class ControlPlaneError(Exception):
    """Control plane rejected a request or returned an unusable response.

    Attributes:
        code: Error code reported by the control plane, if any.
        body: Raw error text.
    """

    def __init__(self, message: str, code: str | None = None, body: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.body = body


def registration_payload(document: dict[str, Any]) -> dict[str, Any]:
    """Strip read-only fields so an exported definition can be re-registered."""
    return {key: value for key, value in document.items() if key not in READ_ONLY_FIELDS}


def parse_service_status(data: dict[str, Any]) -> ServiceStatus:
    """Build a ServiceStatus from one entry of describe-services output."""
    deployments = [
        ServiceDeployment(
            id=d.get("id", ""),
            revision_id=d.get("taskDefinition", ""),
            status=d.get("status", ""),
            running_count=d.get("runningCount", 0),
            desired_count=d.get("desiredCount", 0),
            rollout_state=d.get("rolloutState"),
        )
        for d in data.get("deployments", [])
    ]
    return ServiceStatus(
        revision_id=data.get("taskDefinition", ""),
        running_count=data.get("runningCount", 0),
        desired_count=data.get("desiredCount", 0),
        deployments=deployments,
    )


class EcsClient:
    """Control plane operations via the aws CLI."""

    def __init__(self, region: str, exec_path: str = "aws") -> None:
        self.region = region
        self.exec_path = exec_path

    def _call(self, operation: str, args: list[str]) -> dict[str, Any]:
        cmd = [self.exec_path, "ecs", operation, *args, "--region", self.region, "--output", "json"]
        try:
            result = run_tool(cmd, timeout=CONTROL_PLANE_TIMEOUT)
        except ToolError as e:
            raise ControlPlaneError(f"{operation}: {e}") from e

        if not result.ok:
            match = _AWS_ERROR.search(result.stderr)
            raise ControlPlaneError(
                f"{operation} failed (exit {result.exit_code})",
                code=match.group("code") if match else None,
                body=result.stderr.strip(),
            )
        try:
            return json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ControlPlaneError(
                f"{operation}: invalid JSON response", body=result.stdout
            ) from e

    def register_definition(self, document: dict[str, Any]) -> str:
        """Register a new definition revision and return its identifier."""
        payload = json.dumps(registration_payload(document))
        data = self._call("register-task-definition", ["--cli-input-json", payload])
        arn = data.get("taskDefinition", {}).get("taskDefinitionArn")
        if not arn:
            raise ControlPlaneError("register-task-definition: response has no revision ARN")
        return arn

    def update_service(
        self,
        cluster: str,
        service: str,
        revision_id: str,
        force_new_deployment: bool = True,
    ) -> str:
        """Point the service at ``revision_id`` and return the new deployment ID."""
        args = ["--cluster", cluster, "--service", service, "--task-definition", revision_id]
        if force_new_deployment:
            args.append("--force-new-deployment")
        data = self._call("update-service", args)
        for deployment in data.get("service", {}).get("deployments", []):
            if deployment.get("status") == "PRIMARY":
                return deployment.get("id", "")
        return ""

    def describe_service(self, cluster: str, service: str) -> ServiceStatus:
        data = self._call("describe-services", ["--cluster", cluster, "--services", service])
        services = data.get("services", [])
        if not services:
            reasons = [f.get("reason", "") for f in data.get("failures", [])]
            raise ControlPlaneError(
                f"describe-services: service '{service}' not found in '{cluster}'",
                code="ServiceNotFoundException",
                body=", ".join(reasons),
            )
        return parse_service_status(services[0])
