"""Pipeline run model and stage state machine.

A PipelineRun is the unit of work: one build/publish/patch/deploy pass
for one revision into one environment. The Coordinator is its only writer.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .artifact import ArtifactReference, PublishedReference


class Environment(str, Enum):
    """Supported deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Stage(str, Enum):
    """Pipeline stages, including the three terminal outcomes."""

    PENDING = "pending"
    BUILDING = "building"
    PUBLISHING = "publishing"
    PATCHING = "patching"
    DEPLOYING = "deploying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class RunStatus(str, Enum):
    """Coarse run status derived from the current stage."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STAGES = frozenset({Stage.SUCCEEDED, Stage.FAILED, Stage.TIMED_OUT})

# Terminal stages have no outgoing transitions.
VALID_TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.PENDING: {Stage.BUILDING, Stage.FAILED},
    Stage.BUILDING: {Stage.PUBLISHING, Stage.FAILED},
    Stage.PUBLISHING: {Stage.PATCHING, Stage.FAILED},
    Stage.PATCHING: {Stage.DEPLOYING, Stage.FAILED},
    Stage.DEPLOYING: {Stage.SUCCEEDED, Stage.FAILED, Stage.TIMED_OUT},
    Stage.SUCCEEDED: set(),
    Stage.FAILED: set(),
    Stage.TIMED_OUT: set(),
}


def status_for_stage(stage: Stage) -> RunStatus:
    """Map a stage to the run status it implies."""
    if stage == Stage.PENDING:
        return RunStatus.PENDING
    if stage == Stage.SUCCEEDED:
        return RunStatus.SUCCEEDED
    if stage == Stage.FAILED:
        return RunStatus.FAILED
    if stage == Stage.TIMED_OUT:
        return RunStatus.TIMED_OUT
    return RunStatus.RUNNING


class StageEvent(BaseModel):
    """A single stage transition, emitted for observability."""

    run_id: str
    environment: Environment
    from_stage: Stage
    to_stage: Stage
    at: datetime = Field(default_factory=datetime.now)
    detail: str = ""


class PipelineRun(BaseModel):
    """State of one pipeline execution.

    Attributes:
        run_id: Identifier derived from the source revision.
        environment: Target environment.
        revision: Source revision being deployed.
        stage: Current stage.
        status: Coarse status derived from the stage.
        stage_started_at: When each stage was entered.
        finished_at: When the run reached a terminal stage.
        error_kind: Error taxonomy name if the run did not succeed.
        error_message: Human-readable error message.
        diagnostics: Captured tool output or control-plane error body.
        artifact: Locally built image reference.
        published: Pushed image references.
        revision_id: Registered definition revision.
        events: Stage transition history.
    """

    run_id: str
    environment: Environment
    revision: str
    stage: Stage = Stage.PENDING
    status: RunStatus = RunStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    stage_started_at: dict[Stage, datetime] = Field(default_factory=dict)
    finished_at: datetime | None = None
    error_kind: str | None = None
    error_message: str | None = None
    diagnostics: dict[str, Any] = Field(default_factory=dict)
    artifact: ArtifactReference | None = None
    published: PublishedReference | None = None
    revision_id: str | None = None
    events: list[StageEvent] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        """Whether the run has reached a terminal stage."""
        return self.stage in TERMINAL_STAGES
