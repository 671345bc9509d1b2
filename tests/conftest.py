"""Shared test fixtures for ferry tests."""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from ferry.config import BuildConfig
from ferry.core import ArtifactBuilder, DeploymentDriver, Pipeline, RegistryPublisher
from ferry.core.publisher import RetryPolicy
from ferry.models import (
    DeploymentTarget,
    Environment,
    ServiceDeployment,
    ServiceStatus,
)
from ferry.services import ControlPlaneError, ToolResult

REGISTRY = "123456789012.dkr.ecr.us-east-1.amazonaws.com"
REPOSITORY = "web"


def ok(stdout: str = "") -> ToolResult:
    return ToolResult(args=(), exit_code=0, stdout=stdout, stderr="")


def failed(stderr: str, exit_code: int = 1) -> ToolResult:
    return ToolResult(args=(), exit_code=exit_code, stdout="", stderr=stderr)


class FakeClock:
    """Monotonic clock that only advances when sleep() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeDocker:
    """In-memory docker CLI. Results queued in ``*_results`` are used first."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.build_results: list[ToolResult] = []
        self.login_results: list[ToolResult] = []
        self.push_results: list[ToolResult] = []
        self.pushed: list[str] = []
        self.passwords: list[str] = []

    def build(self, context, dockerfile, tag, build_args=None, labels=None, timeout=None):
        self.calls.append(("build", tag, json.dumps(build_args or {}, sort_keys=True)))
        return self.build_results.pop(0) if self.build_results else ok()

    def tag(self, source: str, target: str) -> ToolResult:
        self.calls.append(("tag", source, target))
        return ok()

    def login(self, registry: str, username: str, password: str) -> ToolResult:
        self.calls.append(("login", registry, username))
        self.passwords.append(password)
        return self.login_results.pop(0) if self.login_results else ok()

    def push(self, image: str) -> ToolResult:
        self.calls.append(("push", image))
        result = self.push_results.pop(0) if self.push_results else ok()
        if result.ok:
            self.pushed.append(image)
        return result

    def image_id(self, image: str) -> str | None:
        return "sha256:abc"


class FakeRegistry:
    """In-memory registry identity service and image catalogue."""

    def __init__(self) -> None:
        self.existing: set[str] = set()
        self.password_requests = 0

    def get_login_password(self) -> str:
        self.password_requests += 1
        return "short-lived-password"

    def image_exists(self, repository: str, tag: str) -> bool:
        return f"{repository}:{tag}" in self.existing


class FakeControlPlane:
    """In-memory control plane.

    After update_service, the service converges once ``converge_after``
    describe calls have been made. ``never_converge`` keeps the old revision
    running forever.
    """

    def __init__(self, converge_after: int = 1, never_converge: bool = False) -> None:
        self.converge_after = converge_after
        self.never_converge = never_converge
        self.registered: list[dict[str, Any]] = []
        self.updates: list[tuple[str, str, str, bool]] = []
        self.describe_calls = 0
        self.current_revision = "arn:aws:ecs:us-east-1:123456789012:task-definition/web:0"
        self.target_revision: str | None = None
        self.register_error: ControlPlaneError | None = None
        self.rollout_state: str | None = None

    def register_definition(self, document: dict[str, Any]) -> str:
        if self.register_error:
            raise self.register_error
        self.registered.append(document)
        family = document["family"]
        return f"arn:aws:ecs:us-east-1:123456789012:task-definition/{family}:{len(self.registered)}"

    def update_service(self, cluster, service, revision_id, force_new_deployment=True) -> str:
        self.updates.append((cluster, service, revision_id, force_new_deployment))
        self.target_revision = revision_id
        self._polls_since_update = 0
        return self._operation_id

    @property
    def _operation_id(self) -> str:
        return f"ecs-svc/{len(self.updates)}"

    def describe_service(self, cluster: str, service: str) -> ServiceStatus:
        self.describe_calls += 1
        target = self.target_revision or self.current_revision
        self._polls_since_update = getattr(self, "_polls_since_update", 0) + 1
        converged = not self.never_converge and self._polls_since_update >= self.converge_after
        if converged:
            return ServiceStatus(
                revision_id=target,
                running_count=2,
                desired_count=2,
                deployments=[
                    ServiceDeployment(id=self._operation_id, revision_id=target, running_count=2)
                ],
            )
        return ServiceStatus(
            revision_id=target,
            running_count=1,
            desired_count=2,
            deployments=[
                ServiceDeployment(
                    id=self._operation_id,
                    revision_id=target,
                    running_count=1,
                    desired_count=2,
                    rollout_state=self.rollout_state or "IN_PROGRESS",
                ),
                ServiceDeployment(
                    id="ecs-svc/0",
                    revision_id=self.current_revision,
                    status="ACTIVE",
                    running_count=1,
                ),
            ],
        )


DEFINITION = {
    "family": "web-staging",
    "networkMode": "awsvpc",
    "cpu": "256",
    "memory": "512",
    "containerDefinitions": [
        {
            "name": "app",
            "image": "placeholder",
            "cpu": 128,
            "memory": 256,
            "essential": True,
            "portMappings": [{"containerPort": 80, "protocol": "tcp"}],
            "environment": [{"name": "ENVIRONMENT", "value": "staging"}],
        },
        {
            "name": "log-router",
            "image": "public.ecr.aws/aws-observability/aws-for-fluent-bit:stable",
            "essential": False,
        },
    ],
}


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def definition() -> dict[str, Any]:
    """Return a fresh copy of the sample definition."""
    return json.loads(json.dumps(DEFINITION))


@pytest.fixture
def project_dir(tmp_path: Path, definition: dict[str, Any]) -> Path:
    """Create a project with a Dockerfile, per-env config and definition templates."""
    (tmp_path / "Dockerfile").write_text("FROM scratch\n")
    for env in Environment:
        (tmp_path / "etc" / env.value).mkdir(parents=True)
        template = tmp_path / "deploy" / env.value / "definition.json"
        template.parent.mkdir(parents=True)
        doc = dict(definition, family=f"web-{env.value}")
        template.write_text(json.dumps(doc, indent=2))
    (tmp_path / ".ferry").mkdir()
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_pipeline(
    project_dir: Path, clock: FakeClock
) -> Callable[..., tuple[Pipeline, FakeDocker, FakeRegistry, FakeControlPlane]]:
    """Factory building a Pipeline wired to in-memory fakes.

    Returns tuple of (pipeline, docker, registry, control_plane).
    """

    def _make(
        environment: Environment = Environment.STAGING,
        revision: str = "abc1234",
        run_id: str | None = None,
        control_plane: FakeControlPlane | None = None,
        docker: FakeDocker | None = None,
        registry: FakeRegistry | None = None,
        builder_cls: type[ArtifactBuilder] = ArtifactBuilder,
        **pipeline_kwargs: Any,
    ) -> tuple[Pipeline, FakeDocker, FakeRegistry, FakeControlPlane]:
        docker = docker or FakeDocker()
        registry = registry or FakeRegistry()
        control_plane = control_plane or FakeControlPlane()
        builder = builder_cls(
            docker,  # type: ignore[arg-type]
            BuildConfig(required_paths=["etc/{environment}"]),
            project_dir,
            registry=REGISTRY,
            repository=REPOSITORY,
        )
        publisher = RegistryPublisher(
            docker,  # type: ignore[arg-type]
            registry,  # type: ignore[arg-type]
            registry_host=REGISTRY,
            policy=RetryPolicy(max_attempts=3, base_delay=2.0, backoff_factor=2.0),
            sleep=clock.sleep,
        )
        driver = DeploymentDriver(
            control_plane, timeout=60, poll_interval=5, sleep=clock.sleep, clock=clock
        )
        target = DeploymentTarget(
            environment=environment,
            cluster=f"web-{environment.value}",
            service=f"web-{environment.value}",
            family=f"web-{environment.value}",
        )
        pipeline = Pipeline(
            run_id=run_id or f"20260101-000000-{environment.value}-{revision}",
            environment=environment,
            revision=revision,
            target=target,
            builder=builder,
            publisher=publisher,
            driver=driver,
            template_path=project_dir / "deploy" / environment.value / "definition.json",
            container_name="app",
            ferry_dir=project_dir / ".ferry",
            **pipeline_kwargs,
        )
        return pipeline, docker, registry, control_plane

    return _make
