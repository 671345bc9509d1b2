"""Run identifiers and the archive of finished runs."""

import re
import uuid
from datetime import datetime
from pathlib import Path

from ..models import Environment, PipelineRun

RUNS_DIR = "runs"


def sanitize_slug(name: str) -> str:
    """Convert name to safe slug.

    Args:
        name: Name to sanitize

    Returns:
        Lowercase slug with only alphanumeric, dots and hyphens
    """
    slug = re.sub(r"[^a-z0-9.]+", "-", name.lower())
    slug = slug.strip("-.")
    return slug[:50] if slug else "unnamed"


def generate_run_id(environment: Environment, revision: str) -> str:
    """Generate run ID in format YYYYMMDD-HHMMSS-<environment>-<revision>-<suffix>.

    The random suffix keeps IDs unique for runs started within the same second,
    which lease ownership and the run archive both rely on.
    """
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    suffix = uuid.uuid4().hex[:8]
    return f"{timestamp}-{environment.value}-{sanitize_slug(revision)}-{suffix}"


def get_runs_dir(ferry_dir: Path) -> Path:
    return ferry_dir / RUNS_DIR


def get_run_dir(ferry_dir: Path, run_id: str) -> Path:
    """Directory holding a run's record and rendered definition."""
    return get_runs_dir(ferry_dir) / run_id


def archive_run(ferry_dir: Path, run: PipelineRun) -> Path:
    """Write a run record to .ferry/runs/<run_id>/run.json.

    Returns:
        Path to the written record
    """
    run_dir = get_run_dir(ferry_dir, run.run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    path = run_dir / "run.json"
    path.write_text(run.model_dump_json(indent=2))
    return path


def load_run(ferry_dir: Path, run_id: str) -> PipelineRun | None:
    """Load an archived run, or None if it doesn't exist."""
    path = get_run_dir(ferry_dir, run_id) / "run.json"
    if not path.exists():
        return None
    return PipelineRun.model_validate_json(path.read_text())


def list_runs(ferry_dir: Path, environment: Environment | None = None) -> list[PipelineRun]:
    """List archived runs, newest first.

    Args:
        ferry_dir: Path to .ferry directory
        environment: Only include runs for this environment

    Returns:
        Archived runs sorted by creation time, most recent first
    """
    runs_dir = get_runs_dir(ferry_dir)
    if not runs_dir.exists():
        return []

    runs = []
    for record in runs_dir.glob("*/run.json"):
        run = PipelineRun.model_validate_json(record.read_text())
        if environment is None or run.environment == environment:
            runs.append(run)
    return sorted(runs, key=lambda r: r.created_at, reverse=True)


def latest_run(ferry_dir: Path, environment: Environment | None = None) -> PipelineRun | None:
    runs = list_runs(ferry_dir, environment)
    return runs[0] if runs else None
