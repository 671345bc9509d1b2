"""Artifact reference models.

Tags are revision-addressed. The mutable ``latest`` marker is a separate,
best-effort output and is never used for deployment.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

# Docker tag grammar: up to 128 chars, leading alnum or underscore.
TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")


class ArtifactReference(BaseModel):
    """Immutable reference to a built image."""

    model_config = ConfigDict(frozen=True)

    registry: str = Field(description="Registry host")
    repository: str = Field(description="Repository name")
    tag: str = Field(description="Revision tag")

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, value: str) -> str:
        if not TAG_PATTERN.match(value):
            raise ValueError(f"Invalid image tag: {value!r}")
        if value == "latest":
            raise ValueError("Artifacts must be revision-tagged, not 'latest'")
        return value

    @property
    def local_image(self) -> str:
        """Image name as tagged by the local build."""
        return f"{self.repository}:{self.tag}"

    @property
    def image(self) -> str:
        """Fully qualified image reference in the registry."""
        return f"{self.registry}/{self.repository}:{self.tag}"

    def with_tag(self, tag: str) -> str:
        """Return the registry reference for another tag of this repository."""
        return f"{self.registry}/{self.repository}:{tag}"


class PublishedReference(BaseModel):
    """Result of pushing an artifact.

    Attributes:
        artifact: The artifact that was pushed.
        revision_image: Immutable revision reference; the only deployable one.
        latest_image: Mutable convenience reference, None if not pushed.
        already_present: True if the revision tag was already in the registry.
        attempts: Publish attempts needed, including the successful one.
    """

    model_config = ConfigDict(frozen=True)

    artifact: ArtifactReference
    revision_image: str
    latest_image: str | None = None
    already_present: bool = False
    attempts: int = 1


class RegistryCredentials(BaseModel):
    """Short-lived registry credentials. Never persisted."""

    model_config = ConfigDict(frozen=True)

    registry: str
    username: str = "AWS"
    password: SecretStr
