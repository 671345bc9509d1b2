"""Tests for ferry data models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from ferry.models import (
    TERMINAL_STAGES,
    VALID_TRANSITIONS,
    ArtifactReference,
    Environment,
    Lease,
    PipelineRun,
    PublishedReference,
    RegistryCredentials,
    ResourceDefinition,
    RunStatus,
    ServiceDeployment,
    ServiceStatus,
    Stage,
    status_for_stage,
)

REV = "arn:aws:ecs:us-east-1:123:task-definition/web:7"
OLD = "arn:aws:ecs:us-east-1:123:task-definition/web:6"


class TestArtifactReference:
    """Tests for ArtifactReference model."""

    def test_image_names(self) -> None:
        """Local and registry image names are derived from the tag."""
        ref = ArtifactReference(registry="r.example", repository="web", tag="abc1234")
        assert ref.local_image == "web:abc1234"
        assert ref.image == "r.example/web:abc1234"
        assert ref.with_tag("latest") == "r.example/web:latest"

    def test_latest_tag_rejected(self) -> None:
        """Artifacts cannot be addressed by the mutable latest tag."""
        with pytest.raises(ValidationError, match="revision-tagged"):
            ArtifactReference(registry="r", repository="web", tag="latest")

    @pytest.mark.parametrize("tag", ["", "-abc", "has space", "a" * 129, "a/b"])
    def test_invalid_tags_rejected(self, tag: str) -> None:
        """Tags must follow the image tag grammar."""
        with pytest.raises(ValidationError):
            ArtifactReference(registry="r", repository="web", tag=tag)

    def test_frozen(self) -> None:
        """References are immutable."""
        ref = ArtifactReference(registry="r", repository="web", tag="abc1234")
        with pytest.raises(ValidationError):
            ref.tag = "other"  # type: ignore[misc]


class TestRegistryCredentials:
    """Tests for RegistryCredentials model."""

    def test_password_not_rendered(self) -> None:
        """The password never appears in repr or dumps."""
        creds = RegistryCredentials(registry="r", password="hunter2")
        assert "hunter2" not in repr(creds)
        assert "hunter2" not in creds.model_dump_json()
        assert creds.password.get_secret_value() == "hunter2"
        assert creds.username == "AWS"


class TestStageMachine:
    """Tests for the stage transition table."""

    def test_terminal_stages_have_no_transitions(self) -> None:
        """Nothing leaves a terminal stage."""
        for stage in TERMINAL_STAGES:
            assert VALID_TRANSITIONS[stage] == set()

    def test_every_active_stage_can_fail(self) -> None:
        """Any non-terminal stage may move to FAILED."""
        for stage, targets in VALID_TRANSITIONS.items():
            if stage not in TERMINAL_STAGES:
                assert Stage.FAILED in targets

    def test_only_deploying_can_time_out(self) -> None:
        """TIMED_OUT is reachable only from DEPLOYING."""
        sources = [s for s, targets in VALID_TRANSITIONS.items() if Stage.TIMED_OUT in targets]
        assert sources == [Stage.DEPLOYING]

    def test_happy_path_is_linear(self) -> None:
        """Each stage advances only to the next one."""
        order = [
            Stage.PENDING,
            Stage.BUILDING,
            Stage.PUBLISHING,
            Stage.PATCHING,
            Stage.DEPLOYING,
            Stage.SUCCEEDED,
        ]
        for current, nxt in zip(order, order[1:], strict=False):
            forward = VALID_TRANSITIONS[current] - {Stage.FAILED, Stage.TIMED_OUT}
            assert forward == {nxt}

    @pytest.mark.parametrize(
        ("stage", "status"),
        [
            (Stage.PENDING, RunStatus.PENDING),
            (Stage.BUILDING, RunStatus.RUNNING),
            (Stage.DEPLOYING, RunStatus.RUNNING),
            (Stage.SUCCEEDED, RunStatus.SUCCEEDED),
            (Stage.FAILED, RunStatus.FAILED),
            (Stage.TIMED_OUT, RunStatus.TIMED_OUT),
        ],
    )
    def test_status_for_stage(self, stage: Stage, status: RunStatus) -> None:
        """Stages map to coarse statuses."""
        assert status_for_stage(stage) == status


class TestPipelineRun:
    """Tests for PipelineRun model."""

    def test_defaults(self) -> None:
        """A new run starts pending with no history."""
        run = PipelineRun(run_id="r1", environment=Environment.STAGING, revision="abc1234")
        assert run.stage == Stage.PENDING
        assert run.status == RunStatus.PENDING
        assert run.events == []
        assert not run.is_terminal

    def test_round_trip_json(self) -> None:
        """Runs survive serialization, including nested references."""
        artifact = ArtifactReference(registry="r", repository="web", tag="abc1234")
        run = PipelineRun(
            run_id="r1",
            environment=Environment.PRODUCTION,
            revision="abc1234",
            stage=Stage.SUCCEEDED,
            artifact=artifact,
            published=PublishedReference(artifact=artifact, revision_image=artifact.image),
            stage_started_at={Stage.BUILDING: datetime(2026, 1, 1)},
        )
        restored = PipelineRun.model_validate_json(run.model_dump_json())
        assert restored == run
        assert restored.is_terminal


class TestServiceStatus:
    """Tests for convergence checks."""

    def test_converged(self) -> None:
        """Desired count reached and old deployments drained."""
        status = ServiceStatus(
            revision_id=REV,
            running_count=2,
            desired_count=2,
            deployments=[
                ServiceDeployment(revision_id=REV, running_count=2),
                ServiceDeployment(revision_id=OLD, status="ACTIVE", running_count=0),
            ],
        )
        assert status.has_converged(REV)

    def test_old_tasks_still_running(self) -> None:
        """Old tasks still running means not converged."""
        status = ServiceStatus(
            revision_id=REV,
            running_count=2,
            desired_count=2,
            deployments=[ServiceDeployment(revision_id=OLD, status="ACTIVE", running_count=1)],
        )
        assert not status.has_converged(REV)

    def test_wrong_revision(self) -> None:
        """A service on another revision has not converged."""
        status = ServiceStatus(revision_id=OLD, running_count=2, desired_count=2)
        assert not status.has_converged(REV)

    def test_under_desired_count(self) -> None:
        """Running below desired count has not converged."""
        status = ServiceStatus(revision_id=REV, running_count=1, desired_count=2)
        assert not status.has_converged(REV)

    def test_redeploy_of_same_revision_waits_for_drain(self) -> None:
        """Forcing a new deployment of the running revision waits for the old tasks."""
        status = ServiceStatus(
            revision_id=REV,
            running_count=2,
            desired_count=2,
            deployments=[
                ServiceDeployment(id="ecs-svc/2", revision_id=REV, running_count=0),
                ServiceDeployment(
                    id="ecs-svc/1", revision_id=REV, status="ACTIVE", running_count=2
                ),
            ],
        )
        assert not status.has_converged(REV, "ecs-svc/2")

        status.deployments[0].running_count = 2
        status.deployments[1].running_count = 0
        assert status.has_converged(REV, "ecs-svc/2")

    def test_unknown_operation_not_converged(self) -> None:
        """The rollout's own deployment must be reported before it can converge."""
        status = ServiceStatus(
            revision_id=REV,
            running_count=2,
            desired_count=2,
            deployments=[ServiceDeployment(id="ecs-svc/1", revision_id=REV, running_count=2)],
        )
        assert not status.has_converged(REV, "ecs-svc/2")

    def test_failed_rollout(self) -> None:
        """A FAILED rollout state on the target revision is reported."""
        failed = ServiceDeployment(revision_id=REV, rollout_state="FAILED")
        status = ServiceStatus(
            revision_id=REV, running_count=0, desired_count=2, deployments=[failed]
        )
        assert status.failed_rollout(REV) == failed
        assert status.failed_rollout(OLD) is None


class TestResourceDefinition:
    """Tests for ResourceDefinition model."""

    def test_to_json_preserves_key_order(self) -> None:
        """Serialized keys keep their original order."""
        doc = {"family": "web", "cpu": "256", "containerDefinitions": [{"name": "app"}]}
        definition = ResourceDefinition(
            family="web", container_name="app", image="r/web:abc", document=doc
        )
        text = definition.to_json()
        assert text.endswith("\n")
        assert text.index('"family"') < text.index('"cpu"') < text.index('"containerDefinitions"')


class TestLease:
    """Tests for Lease model."""

    def test_ownership_needs_pid_and_run(self) -> None:
        """Ownership is the (pid, run_id) pair."""
        lease = Lease(environment=Environment.STAGING, run_id="r1", pid=42)
        assert lease.is_owned_by(42, "r1")
        assert not lease.is_owned_by(42, "r2")
        assert not lease.is_owned_by(43, "r1")
