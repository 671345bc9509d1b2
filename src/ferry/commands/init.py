"""Init command implementation."""

import json
import subprocess

import typer

from ..config import get_ferry_dir, get_project_dir, load_config, write_config_template
from ..constants import INIT_TOOL_CHECK_TIMEOUT
from ..errors import ConfigError
from ..models import Environment
from ..output import get_output_context

# Placeholder written for each environment; replace with an exported definition.
DEFINITION_TEMPLATE = {
    "family": "{family}",
    "networkMode": "awsvpc",
    "requiresCompatibilities": ["FARGATE"],
    "cpu": "256",
    "memory": "512",
    "containerDefinitions": [
        {
            "name": "app",
            "image": "placeholder",
            "essential": True,
            "portMappings": [{"containerPort": 80, "protocol": "tcp"}],
            "environment": [{"name": "ENVIRONMENT", "value": "{environment}"}],
        }
    ],
}


def _render_template(project_name: str, environment: Environment) -> str:
    family = f"{project_name}-{environment.value}"
    text = json.dumps(DEFINITION_TEMPLATE, indent=2)
    return text.replace("{family}", family).replace("{environment}", environment.value) + "\n"


def init(
    name: str | None = typer.Option(
        None, "--name", "-n", help="Project name (defaults to directory name)"
    ),
) -> None:
    """Initialize ferry in the current project."""
    ctx = get_output_context()
    project_dir = get_project_dir()
    ferry_dir = get_ferry_dir(project_dir)
    project_name = name or project_dir.resolve().name

    ferry_dir.mkdir(exist_ok=True)
    (ferry_dir / "runs").mkdir(exist_ok=True)

    config_path = ferry_dir / "config.toml"
    if not config_path.exists():
        write_config_template(ferry_dir, project_name)
        ctx.console.print(f"[green]Created config template:[/green] {config_path}")
    else:
        ctx.console.print(f"[yellow]Config already exists:[/yellow] {config_path}")

    try:
        config = load_config(ferry_dir)
    except ConfigError as e:
        ctx.failure(e.kind, e.message, e.diagnostics)
        raise typer.Exit(e.exit_code) from None

    for environment in Environment:
        template = config.template_path(project_dir, environment)
        if template.exists():
            continue
        template.parent.mkdir(parents=True, exist_ok=True)
        template.write_text(_render_template(project_name, environment))
        ctx.console.print(f"[green]Created definition template:[/green] {template}")

    # Validate toolchain
    tools = {
        "docker": ["docker", "--version"],
        "aws": ["aws", "--version"],
    }

    all_ok = True
    for tool, cmd in tools.items():
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=INIT_TOOL_CHECK_TIMEOUT
            )
            if result.returncode == 0:
                ctx.console.print(f"[green]✓[/green] {tool}")
            else:
                ctx.console.print(f"[red]✗[/red] {tool}: {result.stderr.strip()[:50]}")
                all_ok = False
        except FileNotFoundError:
            ctx.console.print(f"[red]✗[/red] {tool}: not found in PATH")
            all_ok = False
        except subprocess.TimeoutExpired:
            ctx.console.print(f"[yellow]?[/yellow] {tool}: timed out")

    if not all_ok:
        ctx.console.print("\n[yellow]Warning: Some tools are missing or not configured[/yellow]")
        raise typer.Exit(2)

    ctx.console.print("\n[bold green]Ferry initialized successfully![/bold green]")
