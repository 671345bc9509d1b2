"""Status command for run overview."""

import typer

from ..config import get_ferry_dir, get_project_dir
from ..core import get_current_lease, latest_run
from ..models import Environment, Stage
from ..output import get_output_context

STAGE_STYLES = {
    Stage.SUCCEEDED: "green",
    Stage.FAILED: "red",
    Stage.TIMED_OUT: "yellow",
}


def status(
    environment: Environment | None = typer.Option(
        None, "--environment", "-e", help="Only show runs for this environment"
    ),
) -> None:
    """Show the most recent run and any active lease."""
    ctx = get_output_context()
    ferry_dir = get_ferry_dir(get_project_dir())

    if not ferry_dir.exists():
        ctx.error("Ferry not initialized. Run 'ferry init' first.")
        raise typer.Exit(1)

    run = latest_run(ferry_dir, environment)
    if run is None:
        ctx.error("No runs found. Start with: ferry deploy --environment <env>")
        raise typer.Exit(1)

    lease = get_current_lease(ferry_dir, run.environment)
    if ctx.json_mode:
        ctx.print_json(
            {
                "run": run.model_dump(mode="json"),
                "lease": lease.model_dump(mode="json") if lease else None,
            }
        )
        return

    style = STAGE_STYLES.get(run.stage, "cyan")
    ctx.console.print(f"\n[bold]Run:[/bold] {run.run_id}")
    ctx.console.print(f"[bold]Environment:[/bold] {run.environment.value}")
    ctx.console.print(f"[bold]Revision:[/bold] {run.revision}")
    ctx.console.print(f"[bold]Created:[/bold] {run.created_at.strftime('%Y-%m-%d %H:%M')}")
    ctx.console.print(f"[{style}]Status: {run.stage.value.upper()}[/{style}]")

    if run.published:
        ctx.console.print(f"  Image: {run.published.revision_image}")
    if run.revision_id:
        ctx.console.print(f"  Definition revision: {run.revision_id}")
    if run.error_kind:
        ctx.console.print(f"  Error: {run.error_kind}: {run.error_message}")

    if lease:
        ctx.console.print(
            f"[yellow]Lease held by run {lease.run_id} (PID {lease.pid}) "
            f"since {lease.acquired_at.strftime('%H:%M:%S')}[/yellow]"
        )
