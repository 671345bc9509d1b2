"""Deploy command implementation."""

import signal
from types import FrameType

import typer
from rich.panel import Panel

from ..config import (
    LockMode,
    get_ferry_dir,
    get_project_dir,
    load_config,
    load_settings,
)
from ..core import Pipeline, build_pipeline
from ..errors import ERROR_KINDS, FerryError
from ..models import Environment, PipelineRun, Stage, StageEvent
from ..output import OutputContext, get_output_context
from ..services import GitError, resolve_revision

STAGE_LABELS = {
    Stage.BUILDING: "Building image",
    Stage.PUBLISHING: "Publishing to registry",
    Stage.PATCHING: "Patching definition",
    Stage.DEPLOYING: "Deploying",
}


def exit_code_for(run: PipelineRun) -> int:
    """Map a terminal run to the process exit code."""
    if run.stage == Stage.SUCCEEDED:
        return 0
    error_cls = ERROR_KINDS.get(run.error_kind or "")
    return error_cls.exit_code if error_cls else 1


def _print_event(ctx: OutputContext, event: StageEvent) -> None:
    label = STAGE_LABELS.get(event.to_stage)
    if label:
        suffix = f" ({event.detail})" if event.detail else ""
        ctx.print(f"[cyan]→ {label}{suffix}[/cyan]")


def _run_with_signals(pipeline: Pipeline) -> PipelineRun:
    """Run the pipeline, turning SIGINT/SIGTERM into cooperative cancellation."""

    def _handle_signal(signum: int, frame: FrameType | None) -> None:
        pipeline.cancel()

    original_int = signal.signal(signal.SIGINT, _handle_signal)
    original_term = signal.signal(signal.SIGTERM, _handle_signal)
    try:
        return pipeline.run()
    finally:
        signal.signal(signal.SIGINT, original_int)
        signal.signal(signal.SIGTERM, original_term)


def deploy(
    environment: Environment = typer.Option(
        ..., "--environment", "-e", help="Target environment"
    ),
    revision: str | None = typer.Option(
        None,
        "--revision",
        "-r",
        help="Source revision (defaults to the CI commit, then git HEAD)",
    ),
    timeout: int | None = typer.Option(
        None, "--timeout", "-t", min=1, help="Rollout timeout in seconds"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Validate the definition patch only; no build or deploy"
    ),
    wait_for_lock: bool | None = typer.Option(
        None,
        "--wait-for-lock/--fail-on-lock",
        help="Wait for a concurrent deploy to the same environment, or fail at once",
    ),
) -> None:
    """Build, publish and deploy a revision to an environment."""
    ctx = get_output_context()
    project_dir = get_project_dir()

    lock_mode = None
    if wait_for_lock is not None:
        lock_mode = LockMode.WAIT if wait_for_lock else LockMode.FAIL

    try:
        config = load_config(get_ferry_dir(project_dir))
        settings = load_settings()
        settings.require_complete()
        resolved = resolve_revision(revision, project_dir)
        pipeline = build_pipeline(
            config,
            settings,
            project_dir,
            environment,
            resolved,
            timeout=timeout,
            lock_mode=lock_mode,
            listener=lambda event: _print_event(ctx, event),
        )
    except GitError as e:
        ctx.error(f"Could not determine revision: {e}. Pass --revision.")
        raise typer.Exit(1) from None
    except FerryError as e:
        ctx.failure(e.kind, e.message, e.diagnostics)
        raise typer.Exit(e.exit_code) from None

    if dry_run:
        try:
            definition = pipeline.dry_run()
        except FerryError as e:
            ctx.failure(e.kind, e.message, e.diagnostics)
            raise typer.Exit(e.exit_code) from None
        ctx.print("[cyan][DRY RUN][/cyan] Definition is valid. Would register:")
        ctx.print(definition.to_json())
        ctx.result(
            {
                "dry_run": True,
                "environment": environment.value,
                "revision": resolved,
                "image": definition.image,
                "definition": definition.document,
            }
        )
        return

    if not ctx.json_mode:
        ctx.console.print(
            Panel(f"[bold]Deploying[/bold] {resolved} → {environment.value}", style="green")
        )
    run = _run_with_signals(pipeline)

    if run.stage == Stage.SUCCEEDED:
        ctx.success(
            f"Deployed {resolved} to {environment.value} ({run.revision_id})",
            run.model_dump(mode="json", exclude={"events"}),
        )
        return

    ctx.failure(run.error_kind or "Error", run.error_message or "", run.diagnostics)
    raise typer.Exit(exit_code_for(run))
