"""Pipeline coordinator: run build, publish, patch and deploy as one unit.

The coordinator owns the PipelineRun and is its only writer. Stages run
strictly in order and are never retried from here; each stage handles its
own retries internally. The environment lease is held from before BUILDING
until the run reaches a terminal stage.
"""

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from ..config import AccountSettings, FerryConfig, LockMode, get_ferry_dir
from ..errors import Cancelled, DefinitionInvalid, DeploymentTimedOut, FerryError
from ..logging import log_event
from ..models import (
    VALID_TRANSITIONS,
    DeploymentTarget,
    Environment,
    PipelineRun,
    PublishedReference,
    ResourceDefinition,
    Stage,
    StageEvent,
    status_for_stage,
)
from ..services import DockerClient, EcrClient, EcsClient
from .builder import ArtifactBuilder
from .driver import DeploymentDriver
from .lease import acquire_lease, release_lease, update_heartbeat, wait_for_lease
from .patcher import patch, write_definition
from .publisher import RegistryPublisher, RetryPolicy
from .run_store import archive_run, generate_run_id, get_run_dir

logger = logging.getLogger(__name__)

EventListener = Callable[[StageEvent], None]


class InvalidTransitionError(RuntimeError):
    """Raised when a requested stage transition is not valid."""


class Pipeline:
    """Drives one PipelineRun through the stage state machine.

    Example:
        >>> pipeline = build_pipeline(config, settings, project_dir, env, "abc1234")
        >>> run = pipeline.run()
        >>> run.stage
        <Stage.SUCCEEDED: 'succeeded'>
    """

    def __init__(
        self,
        run_id: str,
        environment: Environment,
        revision: str,
        target: DeploymentTarget,
        builder: ArtifactBuilder,
        publisher: RegistryPublisher,
        driver: DeploymentDriver,
        template_path: Path,
        container_name: str,
        ferry_dir: Path,
        lock_mode: LockMode = LockMode.FAIL,
        lock_wait_timeout: float = 0,
        lease_ttl: int = 3600,
        listener: EventListener | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.target = target
        self.builder = builder
        self.publisher = publisher
        self.driver = driver
        self.template_path = template_path
        self.container_name = container_name
        self.ferry_dir = ferry_dir
        self.lock_mode = lock_mode
        self.lock_wait_timeout = lock_wait_timeout
        self.lease_ttl = lease_ttl
        self.listener = listener
        self.sleep = sleep
        self._cancel_event = threading.Event()
        self._run = PipelineRun(run_id=run_id, environment=environment, revision=revision)

    @property
    def state(self) -> PipelineRun:
        """Snapshot of the run for observers."""
        return self._run.model_copy(deep=True)

    @property
    def run_dir(self) -> Path:
        return get_run_dir(self.ferry_dir, self._run.run_id)

    def cancel(self) -> None:
        """Request cooperative cancellation.

        Checked between stages and between deploy polls; an external call
        already in progress is allowed to finish.
        """
        self._cancel_event.set()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: Stage, detail: str = "") -> None:
        current = self._run.stage
        if target not in VALID_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {target.value}"
            )

        now = datetime.now()
        event = StageEvent(
            run_id=self._run.run_id,
            environment=self._run.environment,
            from_stage=current,
            to_stage=target,
            at=now,
            detail=detail,
        )
        self._run.stage = target
        self._run.status = status_for_stage(target)
        self._run.stage_started_at[target] = now
        self._run.events.append(event)
        if self._run.is_terminal:
            self._run.finished_at = now

        log_event(
            "stage",
            run_id=event.run_id,
            environment=event.environment.value,
            from_stage=current.value,
            to_stage=target.value,
            detail=detail,
        )
        if self.listener is not None:
            self.listener(event)

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise Cancelled(
                f"Run cancelled before leaving {self._run.stage.value}",
                {"stage": self._run.stage.value},
            )

    def _finish_with_error(self, error: FerryError) -> None:
        self._run.error_kind = error.kind
        self._run.error_message = error.message
        self._run.diagnostics = error.diagnostics
        terminal = Stage.TIMED_OUT if isinstance(error, DeploymentTimedOut) else Stage.FAILED
        if isinstance(error, DeploymentTimedOut) and error.revision_id:
            self._run.revision_id = error.revision_id
        self._transition(terminal, detail=error.kind)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _acquire_lease(self) -> None:
        run_id = self._run.run_id
        environment = self._run.environment
        if self.lock_mode == LockMode.WAIT:
            wait_for_lease(
                self.ferry_dir,
                environment,
                run_id,
                timeout=self.lock_wait_timeout,
                ttl_seconds=self.lease_ttl,
                sleep=self.sleep,
            )
        else:
            acquire_lease(self.ferry_dir, environment, run_id, ttl_seconds=self.lease_ttl)

    def _patch(self, published: PublishedReference) -> ResourceDefinition:
        definition = patch(self.template_path, self.container_name, published)
        if definition.family != self.target.family:
            raise DefinitionInvalid(
                f"Definition family '{definition.family}' does not match "
                f"target family '{self.target.family}'",
                {"path": str(self.template_path)},
            )
        return definition

    def _execute(self) -> None:
        run = self._run

        self._check_cancelled()
        self._transition(Stage.BUILDING)
        run.artifact = self.builder.build(run.revision, run.environment)

        self._check_cancelled()
        self._transition(Stage.PUBLISHING, detail=run.artifact.local_image)
        credentials = self.publisher.fetch_credentials()
        run.published = self.publisher.publish(run.artifact, credentials)

        self._check_cancelled()
        self._transition(Stage.PATCHING, detail=run.published.revision_image)
        definition = self._patch(run.published)
        write_definition(definition, self.run_dir / "definition.json")

        self._check_cancelled()
        self._transition(Stage.DEPLOYING, detail=definition.family)
        result = self.driver.deploy(definition, self.target, self._cancel_event)
        run.revision_id = result.revision_id

        self._transition(Stage.SUCCEEDED, detail=result.revision_id)

    def run(self) -> PipelineRun:
        """Execute the run until it reaches a terminal stage.

        Returns:
            The terminal PipelineRun. Errors are recorded on the run
            (error_kind, error_message, diagnostics) rather than raised.
        """
        environment = self._run.environment
        try:
            self._acquire_lease()
        except FerryError as e:
            self._finish_with_error(e)
            archive_run(self.ferry_dir, self._run)
            return self.state

        try:
            self._execute()
        except FerryError as e:
            self._finish_with_error(e)
        except Exception as e:
            if not self._run.is_terminal:
                self._run.error_kind = type(e).__name__
                self._run.error_message = str(e)
                self._transition(Stage.FAILED, detail="internal error")
            raise
        finally:
            release_lease(self.ferry_dir, environment, self._run.run_id)
            archive_run(self.ferry_dir, self._run)

        return self.state

    def dry_run(self) -> ResourceDefinition:
        """Validate the definition patch without any build or network side effects.

        Raises:
            FerryError: The same patch errors a real run would hit
        """
        artifact = self.builder.reference_for(self._run.revision)
        published = PublishedReference(artifact=artifact, revision_image=artifact.image)
        return self._patch(published)


def build_pipeline(
    config: FerryConfig,
    settings: AccountSettings,
    project_dir: Path,
    environment: Environment,
    revision: str,
    timeout: float | None = None,
    lock_mode: LockMode | None = None,
    listener: EventListener | None = None,
) -> Pipeline:
    """Wire a Pipeline to the real docker, registry and control-plane adapters.

    Raises:
        ConfigError: If the environment has no target configured
    """
    target = config.get_target(environment)
    ferry_dir = get_ferry_dir(project_dir)
    run_id = generate_run_id(environment, revision)

    docker = DockerClient(config.build.exec)
    builder = ArtifactBuilder(
        docker,
        config.build,
        project_dir,
        registry=settings.registry_host,
        repository=settings.image_repo_name,
    )
    publisher = RegistryPublisher(
        docker,
        EcrClient(settings.aws_default_region, config.registry.aws_exec),
        registry_host=settings.registry_host,
        policy=RetryPolicy.from_config(config.registry),
        push_latest=config.registry.push_latest,
    )
    driver = DeploymentDriver(
        EcsClient(settings.aws_default_region, config.registry.aws_exec),
        timeout=timeout or config.deploy.timeout,
        poll_interval=config.deploy.poll_interval,
        heartbeat=lambda: update_heartbeat(ferry_dir, environment, run_id),
    )
    return Pipeline(
        run_id=run_id,
        environment=environment,
        revision=revision,
        target=target,
        builder=builder,
        publisher=publisher,
        driver=driver,
        template_path=config.template_path(project_dir, environment),
        container_name=config.deploy.container_name,
        ferry_dir=ferry_dir,
        lock_mode=lock_mode or config.deploy.lock_mode,
        lock_wait_timeout=config.deploy.lock_wait_timeout,
        lease_ttl=config.deploy.lease_ttl,
        listener=listener,
    )
