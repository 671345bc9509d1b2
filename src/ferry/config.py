"""Configuration management for ferry.

Two sources feed a run:
- ``.ferry/config.toml``: build, registry, deploy and per-environment targets
- process environment: account, region and repository identifiers

Both are read once at startup and treated as immutable for the run.
"""

import tomllib
from enum import Enum
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import FERRY_DIR
from .errors import ConfigError
from .models import DeploymentTarget, Environment


class LockMode(str, Enum):
    """What to do when another run holds the environment lease."""

    FAIL = "fail"
    WAIT = "wait"


class ProjectConfig(BaseModel):
    """Project-level configuration."""

    name: str = "unnamed-project"


class BuildConfig(BaseModel):
    """Configuration for the image build."""

    exec: str = "docker"
    context: str = "."
    dockerfile: str = "Dockerfile"
    build_args: dict[str, str] = Field(default_factory=dict)
    # Paths (relative to context) that must exist; "{environment}" is substituted
    required_paths: list[str] = Field(default_factory=list)
    timeout: int | None = None


class RegistryConfig(BaseModel):
    """Configuration for registry authentication and pushes."""

    aws_exec: str = "aws"
    push_latest: bool = True
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)


class DeployConfig(BaseModel):
    """Configuration for definition patching and rollout."""

    container_name: str = "app"
    templates_dir: str = "deploy"
    timeout: int = Field(default=600, gt=0)
    poll_interval: float = Field(default=10.0, gt=0)
    lock_mode: LockMode = LockMode.FAIL
    lock_wait_timeout: int = Field(default=900, ge=0)
    lease_ttl: int = Field(default=3600, gt=0)


class TargetConfig(BaseModel):
    """Cluster and service for one environment."""

    cluster: str
    service: str
    family: str


class FerryConfig(BaseModel):
    """Root configuration for ferry."""

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    environments: dict[Environment, TargetConfig] = Field(default_factory=dict)

    def get_target(self, environment: Environment) -> DeploymentTarget:
        """Get the deployment target for an environment.

        Raises:
            ConfigError: If the environment has no [environments.<name>] table
        """
        target = self.environments.get(environment)
        if target is None:
            raise ConfigError(
                f"No target configured for environment '{environment.value}'",
                {"hint": f"Add an [environments.{environment.value}] table to config.toml"},
            )
        return DeploymentTarget(
            environment=environment,
            cluster=target.cluster,
            service=target.service,
            family=target.family,
        )

    def template_path(self, project_dir: Path, environment: Environment) -> Path:
        """Path of the definition template for an environment."""
        return project_dir / self.deploy.templates_dir / environment.value / "definition.json"


class AccountSettings(BaseSettings):
    """Account identifiers read from the process environment.

    Variables: AWS_ACCOUNT_ID, AWS_DEFAULT_REGION, IMAGE_REPO_NAME and the
    optional FERRY_REGISTRY_HOST override.
    """

    model_config = SettingsConfigDict(frozen=True, case_sensitive=False)

    aws_account_id: str = ""
    aws_default_region: str = ""
    image_repo_name: str = ""
    ferry_registry_host: str | None = None

    @property
    def registry_host(self) -> str:
        """Registry host derived from account and region."""
        if self.ferry_registry_host:
            return self.ferry_registry_host
        return f"{self.aws_account_id}.dkr.ecr.{self.aws_default_region}.amazonaws.com"

    def require_complete(self) -> None:
        """Ensure the identifiers needed to build and push are present.

        Raises:
            ConfigError: Listing every missing variable
        """
        missing = []
        if not self.image_repo_name:
            missing.append("IMAGE_REPO_NAME")
        if not self.aws_default_region:
            missing.append("AWS_DEFAULT_REGION")
        if not self.aws_account_id and not self.ferry_registry_host:
            missing.append("AWS_ACCOUNT_ID")
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}",
                {"missing": missing},
            )


def load_settings() -> AccountSettings:
    """Read account settings from the environment."""
    return AccountSettings()


# Project root (set by cli.py main callback)
_project_dir: Path | None = None


def get_project_dir() -> Path:
    """Get the project root, defaulting to the current directory."""
    if _project_dir is None:
        return Path.cwd()
    return _project_dir


def set_project_dir(path: Path | None) -> None:
    """Set the project root. Called by CLI main callback."""
    global _project_dir
    _project_dir = path


def get_ferry_dir(project_dir: Path) -> Path:
    """Get the .ferry directory for a project."""
    return project_dir / FERRY_DIR


def load_config(ferry_dir: Path) -> FerryConfig:
    """Load config from .ferry/config.toml.

    Args:
        ferry_dir: Path to .ferry directory

    Returns:
        Loaded configuration, or defaults if config.toml doesn't exist

    Raises:
        ConfigError: If the file is not valid TOML or fails validation
    """
    config_path = ferry_dir / "config.toml"
    if not config_path.exists():
        return FerryConfig()
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        return FerryConfig.model_validate(data)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration in {config_path}",
            {"errors": [err["msg"] for err in e.errors()]},
        ) from e


def write_config_template(ferry_dir: Path, project_name: str = "your-project") -> Path:
    """Write default config.toml template.

    Args:
        ferry_dir: Path to .ferry directory
        project_name: Name used for the project and default targets

    Returns:
        Path to the written config file
    """
    config_path = ferry_dir / "config.toml"
    template = {
        "project": {"name": project_name},
        "build": {
            "exec": "docker",
            "context": ".",
            "dockerfile": "Dockerfile",
            "build_args": {},
            "required_paths": ["etc/{environment}"],
        },
        "registry": {
            "aws_exec": "aws",
            "push_latest": True,
            "max_attempts": 3,
            "base_delay": 2.0,
            "backoff_factor": 2.0,
        },
        "deploy": {
            "container_name": "app",
            "templates_dir": "deploy",
            "timeout": 600,
            "poll_interval": 10.0,
            "lock_mode": "fail",
            "lock_wait_timeout": 900,
            "lease_ttl": 3600,
        },
        "environments": {
            env.value: {
                "cluster": f"{project_name}-{env.value}",
                "service": f"{project_name}-{env.value}",
                "family": f"{project_name}-{env.value}",
            }
            for env in Environment
        },
    }
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
