"""Deployment driver: register a definition, roll it out and wait for it.

The driver talks to the control plane through three operations:
RegisterDefinition, UpdateService and DescribeService. Registration always
creates a new revision and never touches older ones, so rolling back is a
matter of pointing the service at an earlier revision identifier.

A rollout that does not converge in time is reported, not undone: the
driver never issues a compensating call on its own.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

from ..errors import Cancelled, DeploymentRejected, DeploymentTimedOut
from ..models import (
    DeploymentResult,
    DeploymentTarget,
    ResourceDefinition,
    ServiceStatus,
)
from ..services.ecs import ControlPlaneError

logger = logging.getLogger(__name__)

# Describe errors that mean the target itself is wrong, not a passing glitch.
FATAL_DESCRIBE_CODES = frozenset({"ServiceNotFoundException", "ClusterNotFoundException"})


class ControlPlane(Protocol):
    """Operations consumed from the orchestration control plane."""

    def register_definition(self, document: dict[str, Any]) -> str: ...

    def update_service(
        self,
        cluster: str,
        service: str,
        revision_id: str,
        force_new_deployment: bool = True,
    ) -> str: ...

    def describe_service(self, cluster: str, service: str) -> ServiceStatus: ...


def _rejection(
    action: str, error: ControlPlaneError, revision_id: str | None = None
) -> DeploymentRejected:
    return DeploymentRejected(
        f"{action} rejected: {error}",
        {"code": error.code, "body": error.body, "revision_id": revision_id},
    )


class DeploymentDriver:
    """Registers definitions and drives services to new revisions."""

    def __init__(
        self,
        control_plane: ControlPlane,
        timeout: float = 600,
        poll_interval: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        heartbeat: Callable[[], None] | None = None,
    ) -> None:
        self.control_plane = control_plane
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.clock = clock
        self.heartbeat = heartbeat

    def register(self, definition: ResourceDefinition) -> str:
        """Register the definition as a new revision of its family.

        Raises:
            DeploymentRejected: If the control plane refuses the definition
        """
        try:
            revision_id = self.control_plane.register_definition(definition.document)
        except ControlPlaneError as e:
            raise _rejection("RegisterDefinition", e) from e
        logger.info("Registered %s", revision_id)
        return revision_id

    def roll_out(self, revision_id: str, target: DeploymentTarget) -> str:
        """Ask the service to replace its tasks with ``revision_id``.

        Raises:
            DeploymentRejected: If the control plane refuses the update
        """
        try:
            operation_id = self.control_plane.update_service(
                target.cluster, target.service, revision_id, force_new_deployment=True
            )
        except ControlPlaneError as e:
            raise _rejection("UpdateService", e, revision_id) from e
        logger.info("Rolling out %s to %s/%s", revision_id, target.cluster, target.service)
        return operation_id

    def wait_for_convergence(
        self,
        revision_id: str,
        operation_id: str,
        target: DeploymentTarget,
        cancel_event: threading.Event | None = None,
    ) -> DeploymentResult:
        """Poll the service until it runs only ``revision_id`` at desired count.

        Raises:
            DeploymentRejected: If the rollout fails or the service is missing
            DeploymentTimedOut: If the service has not converged in time
            Cancelled: If ``cancel_event`` is set between polls
        """
        start = self.clock()
        polls = 0
        status: ServiceStatus | None = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise Cancelled(
                    "Deployment cancelled while waiting for rollout; rollout left in flight",
                    {"revision_id": revision_id, "operation_id": operation_id},
                )

            try:
                status = self.control_plane.describe_service(target.cluster, target.service)
            except ControlPlaneError as e:
                if e.code in FATAL_DESCRIBE_CODES:
                    raise _rejection("DescribeService", e, revision_id) from e
                logger.warning("DescribeService failed (%s); will poll again", e)
            else:
                polls += 1
                logger.debug(
                    "Poll %d: %s running %d/%d",
                    polls,
                    status.revision_id,
                    status.running_count,
                    status.desired_count,
                )
                failed = status.failed_rollout(revision_id, operation_id)
                if failed is not None:
                    raise DeploymentRejected(
                        f"Rollout of {revision_id} failed",
                        {"deployment": failed.model_dump(), "revision_id": revision_id},
                    )
                if status.has_converged(revision_id, operation_id):
                    logger.info("Service %s converged on %s", target.service, revision_id)
                    return DeploymentResult(
                        revision_id=revision_id,
                        operation_id=operation_id,
                        polls=polls,
                        final_status=status,
                    )

            if self.heartbeat is not None:
                self.heartbeat()

            elapsed = self.clock() - start
            if elapsed >= self.timeout:
                raise DeploymentTimedOut(
                    f"Service {target.service} did not converge on {revision_id} "
                    f"within {self.timeout:g}s",
                    revision_id=revision_id,
                    diagnostics={
                        "revision_id": revision_id,
                        "operation_id": operation_id,
                        "polls": polls,
                        "last_status": status.model_dump() if status else None,
                    },
                )
            self.sleep(min(self.poll_interval, self.timeout - elapsed))

    def deploy(
        self,
        definition: ResourceDefinition,
        target: DeploymentTarget,
        cancel_event: threading.Event | None = None,
    ) -> DeploymentResult:
        """Register ``definition`` and roll ``target`` onto the new revision.

        Args:
            definition: Patched, validated definition
            target: Cluster and service to update
            cancel_event: Set to stop polling early

        Returns:
            DeploymentResult for the converged rollout

        Raises:
            DeploymentRejected: On control-plane rejection or failed rollout
            DeploymentTimedOut: If the rollout does not converge in time
            Cancelled: If cancelled while polling
        """
        revision_id = self.register(definition)
        operation_id = self.roll_out(revision_id, target)
        return self.wait_for_convergence(revision_id, operation_id, target, cancel_event)

    def rollback(
        self,
        revision_id: str,
        target: DeploymentTarget,
        cancel_event: threading.Event | None = None,
    ) -> DeploymentResult:
        """Point ``target`` back at an existing revision and wait for it."""
        logger.info("Rolling %s back to %s", target.service, revision_id)
        operation_id = self.roll_out(revision_id, target)
        return self.wait_for_convergence(revision_id, operation_id, target, cancel_event)
