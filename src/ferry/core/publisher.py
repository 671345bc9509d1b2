"""Registry publisher: authenticate and push built images.

Each publish attempt logs in, checks whether the revision tag is already
in the registry and pushes it if not. Attempts that fail with a transient
or auth error are retried with bounded exponential backoff; after an auth
error the next attempt logs in with a freshly fetched password. The mutable
``latest`` tag is pushed once, afterwards, and its failure is not fatal.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..config import RegistryConfig
from ..constants import LATEST_TAG
from ..errors import PublishFailure
from ..models import ArtifactReference, PublishedReference, RegistryCredentials
from ..services.docker import DockerClient
from ..services.ecr import EcrClient, RegistryError, classify_failure
from ..services.process import ToolError, ToolResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTH_STATUSES = (401, 403)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    max_attempts: int = 3
    base_delay: float = 2.0
    backoff_factor: float = 2.0

    @classmethod
    def from_config(cls, config: RegistryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            backoff_factor=config.backoff_factor,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * self.backoff_factor ** (attempt - 1)


class RegistryPublisher:
    """Pushes artifacts under their revision tag and the ``latest`` marker."""

    def __init__(
        self,
        docker: DockerClient,
        registry: EcrClient,
        registry_host: str,
        policy: RetryPolicy | None = None,
        push_latest: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.docker = docker
        self.registry = registry
        self.registry_host = registry_host
        self.policy = policy or RetryPolicy()
        self.push_latest = push_latest
        self.sleep = sleep

    def _retry(self, action: str, operation: Callable[[], T]) -> tuple[T, int]:
        """Run ``operation`` under the retry policy.

        Returns:
            Tuple of (operation result, attempts used)

        Raises:
            PublishFailure: On a permanent error or when attempts run out
        """
        failures: list[dict[str, Any]] = []
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                return operation(), attempt
            except RegistryError as e:
                failures.append(
                    {"attempt": attempt, "error": str(e), "status": e.status, "output": e.output}
                )
                if not e.transient:
                    raise PublishFailure(
                        f"{action} failed: {e}", {"attempts": failures}
                    ) from e
                if attempt == self.policy.max_attempts:
                    raise PublishFailure(
                        f"{action} failed after {attempt} attempts: {e}", {"attempts": failures}
                    ) from e
                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s); retrying in %.1fs",
                    action,
                    attempt,
                    self.policy.max_attempts,
                    e,
                    delay,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")  # max_attempts >= 1

    def _docker(self, action: str, call: Callable[[], ToolResult]) -> None:
        """Run a docker call, raising RegistryError on failure."""
        try:
            result = call()
        except ToolError as e:
            raise RegistryError(f"{action}: {e}", transient="timed out" in str(e)) from e
        if not result.ok:
            raise classify_failure(result, action)

    def fetch_credentials(self) -> RegistryCredentials:
        """Obtain short-lived credentials from the platform identity service.

        Raises:
            PublishFailure: If credentials cannot be obtained
        """
        password, _ = self._retry("get-login-password", self.registry.get_login_password)
        return RegistryCredentials(registry=self.registry_host, password=password)

    def publish(
        self, artifact: ArtifactReference, credentials: RegistryCredentials
    ) -> PublishedReference:
        """Push an artifact to the registry.

        Args:
            artifact: Locally built artifact
            credentials: Short-lived registry credentials, scoped to this call

        Returns:
            PublishedReference with the deployable revision image

        Raises:
            PublishFailure: If the revision tag could not be pushed
        """
        password = credentials.password.get_secret_value()
        refresh = False

        def attempt() -> bool:
            nonlocal password, refresh
            if refresh:
                # Short-lived passwords expire; a rejected login needs a new one
                logger.info("Registry rejected credentials; fetching a fresh password")
                password = self.registry.get_login_password()
                refresh = False
            try:
                self._docker(
                    "login",
                    lambda: self.docker.login(credentials.registry, credentials.username, password),
                )
                if self.registry.image_exists(artifact.repository, artifact.tag):
                    logger.info("%s already in registry; not pushing again", artifact.image)
                    return True
                self._docker("tag", lambda: self.docker.tag(artifact.local_image, artifact.image))
                self._docker("push", lambda: self.docker.push(artifact.image))
            except RegistryError as e:
                refresh = e.status in AUTH_STATUSES
                raise
            return False

        already_present, attempts = self._retry(f"publish {artifact.image}", attempt)
        if not already_present:
            logger.info("Pushed %s", artifact.image)

        latest_image = self._publish_latest(artifact) if self.push_latest else None
        return PublishedReference(
            artifact=artifact,
            revision_image=artifact.image,
            latest_image=latest_image,
            already_present=already_present,
            attempts=attempts,
        )

    def _publish_latest(self, artifact: ArtifactReference) -> str | None:
        """Move the ``latest`` marker to this artifact. Best-effort."""
        latest = artifact.with_tag(LATEST_TAG)
        try:
            self._docker("tag latest", lambda: self.docker.tag(artifact.local_image, latest))
            self._docker("push latest", lambda: self.docker.push(latest))
        except RegistryError as e:
            logger.warning("Could not update %s: %s", latest, e)
            return None
        return latest
