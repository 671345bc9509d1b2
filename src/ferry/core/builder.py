"""Artifact builder: turn a source revision into a locally tagged image."""

import logging
from pathlib import Path

from ..config import BuildConfig
from ..errors import BuildFailure
from ..models import ArtifactReference, Environment
from ..services.docker import DockerClient
from ..services.process import ToolError

logger = logging.getLogger(__name__)

REVISION_LABEL = "ferry.revision"
ENVIRONMENT_BUILD_ARG = "ENVIRONMENT"


class ArtifactBuilder:
    """Invokes the image build tool for one revision and environment.

    The tag is the revision itself, so rebuilding the same revision and
    environment always yields the same reference.
    """

    def __init__(
        self,
        docker: DockerClient,
        config: BuildConfig,
        project_dir: Path,
        registry: str,
        repository: str,
    ) -> None:
        self.docker = docker
        self.config = config
        self.project_dir = project_dir
        self.registry = registry
        self.repository = repository

    @property
    def context_dir(self) -> Path:
        return (self.project_dir / self.config.context).resolve()

    def reference_for(self, revision: str) -> ArtifactReference:
        """Return the reference a build of ``revision`` will produce.

        Raises:
            BuildFailure: If the revision is not usable as an image tag
        """
        try:
            return ArtifactReference(
                registry=self.registry, repository=self.repository, tag=revision
            )
        except ValueError as e:
            raise BuildFailure(
                f"Revision '{revision}' is not a valid image tag", {"revision": revision}
            ) from e

    def check_required_paths(self, environment: Environment) -> None:
        """Ensure per-environment build inputs exist before invoking the tool."""
        missing = []
        for pattern in self.config.required_paths:
            relative = pattern.format(environment=environment.value)
            if not (self.context_dir / relative).exists():
                missing.append(relative)
        if missing:
            raise BuildFailure(
                f"Missing build inputs for {environment.value}: {', '.join(missing)}",
                {"missing": missing, "context": str(self.context_dir)},
            )

    def build(self, revision: str, environment: Environment) -> ArtifactReference:
        """Build the image for a revision.

        Args:
            revision: Source revision, used as the image tag
            environment: Passed to the build as the ENVIRONMENT build argument

        Returns:
            ArtifactReference for the locally tagged image

        Raises:
            BuildFailure: If inputs are missing or the build tool fails
        """
        artifact = self.reference_for(revision)
        self.check_required_paths(environment)

        build_args = {**self.config.build_args, ENVIRONMENT_BUILD_ARG: environment.value}
        logger.info("Building %s for %s", artifact.local_image, environment.value)
        try:
            result = self.docker.build(
                context=self.context_dir,
                dockerfile=self.context_dir / self.config.dockerfile,
                tag=artifact.local_image,
                build_args=build_args,
                labels={REVISION_LABEL: revision},
                timeout=self.config.timeout,
            )
        except ToolError as e:
            raise BuildFailure(str(e), {"image": artifact.local_image}) from e

        if not result.ok:
            raise BuildFailure(
                f"Image build failed with exit code {result.exit_code}",
                {"image": artifact.local_image, "output": result.output},
            )

        logger.debug("Built %s", artifact.local_image)
        return artifact
