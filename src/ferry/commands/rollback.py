"""Rollback command implementation."""

import uuid
from datetime import datetime
from pathlib import Path

import typer

from ..config import get_ferry_dir, get_project_dir, load_config, load_settings
from ..core import DeploymentDriver, acquire_lease, release_lease, update_heartbeat
from ..core.run_store import list_runs
from ..errors import FerryError
from ..models import Environment, Stage
from ..output import get_output_context
from ..services import EcsClient


def rollback(
    environment: Environment = typer.Option(
        ..., "--environment", "-e", help="Target environment"
    ),
    to: str | None = typer.Option(
        None,
        "--to",
        help="Definition revision to restore (defaults to the previous successful deploy)",
    ),
    timeout: int | None = typer.Option(
        None, "--timeout", "-t", min=1, help="Rollout timeout in seconds"
    ),
) -> None:
    """Point an environment's service back at an earlier definition revision."""
    ctx = get_output_context()
    project_dir = get_project_dir()
    ferry_dir = get_ferry_dir(project_dir)
    run_id = f"rollback-{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"

    try:
        config = load_config(ferry_dir)
        settings = load_settings()
        target = config.get_target(environment)
        revision_id = to or _previous_revision(ferry_dir, environment)
        if revision_id is None:
            ctx.error("No earlier successful deploy recorded. Pass --to <revision>.")
            raise typer.Exit(1)

        acquire_lease(
            ferry_dir, environment, run_id, command="rollback", ttl_seconds=config.deploy.lease_ttl
        )
        try:
            driver = DeploymentDriver(
                EcsClient(settings.aws_default_region, config.registry.aws_exec),
                timeout=timeout or config.deploy.timeout,
                poll_interval=config.deploy.poll_interval,
                heartbeat=lambda: update_heartbeat(ferry_dir, environment, run_id),
            )
            ctx.print(f"[cyan]→ Rolling back {environment.value} to {revision_id}[/cyan]")
            result = driver.rollback(revision_id, target)
        finally:
            release_lease(ferry_dir, environment, run_id)
    except FerryError as e:
        ctx.failure(e.kind, e.message, e.diagnostics)
        raise typer.Exit(e.exit_code) from None

    ctx.success(
        f"Rolled back {environment.value} to {result.revision_id}",
        result.model_dump(mode="json"),
    )


def _previous_revision(ferry_dir: Path, environment: Environment) -> str | None:
    """Most recent successfully deployed revision other than the current one."""
    succeeded = [
        run.revision_id
        for run in list_runs(ferry_dir, environment)
        if run.stage == Stage.SUCCEEDED and run.revision_id
    ]
    if not succeeded:
        return None
    current = succeeded[0]
    return next((rev for rev in succeeded[1:] if rev != current), None)
