"""Ferry CLI: build, publish and deploy container images."""

from pathlib import Path

import typer

from ferry import __version__

from .commands import deploy, init, rollback, status
from .config import set_project_dir
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"ferry {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="ferry",
    help="Build, publish and deploy container images to a managed orchestrator",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging with timestamps and source locations",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    project_dir: Path | None = typer.Option(
        None,
        "--project-dir",
        "-C",
        help="Project root (defaults to the current directory)",
        file_okay=False,
        exists=True,
    ),
) -> None:
    """Ferry CLI - build, publish and deploy container images."""
    console = configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
        debug=debug,
    )
    set_output_context(OutputContext(console=console, json_mode=json_output))
    set_project_dir(project_dir)


app.command()(init)
app.command()(deploy)
app.command()(rollback)
app.command()(status)


def run() -> None:
    """Entry point for the ferry console script."""
    app()
