"""Per-environment lease for ferry deploys.

Provides PID-based file leases so that only one run at a time deploys to a
given environment. Different environments use different lease files and
never contend. Includes stale lease detection for crash recovery.

Uses atomic file creation (O_CREAT | O_EXCL) to prevent TOCTOU races.
"""

import contextlib
import logging
import os
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from ..errors import LockContention
from ..models import Environment, Lease

logger = logging.getLogger(__name__)

LEASES_DIR = "leases"
DEFAULT_TTL_SECONDS = 3600  # 1 hour
MAX_LEASE_RETRIES = 3  # Max retries when clearing stale leases
WAIT_POLL_SECONDS = 2.0
WRITE_GRACE_SECONDS = 10  # Unreadable leases younger than this may still be mid-write


def _lease_path(ferry_dir: Path, environment: Environment) -> Path:
    """Get path to an environment's lease file."""
    return ferry_dir / LEASES_DIR / f"{environment.value}.lock"


def _is_pid_running(pid: int) -> bool:
    """Check if a process with given PID is running."""
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks
        return True
    except OSError:
        return False


def get_current_lease(ferry_dir: Path, environment: Environment) -> Lease | None:
    """Get the environment's lease if it exists and is readable.

    Args:
        ferry_dir: Path to .ferry directory
        environment: Environment whose lease to read

    Returns:
        Lease if a valid lease file exists, None otherwise
    """
    lease_path = _lease_path(ferry_dir, environment)
    if not lease_path.exists():
        return None

    try:
        return Lease.model_validate_json(lease_path.read_text())
    except (OSError, ValueError):
        # Corrupted or half-written lease file - treat as no lease
        return None


def _is_abandoned_write(lease_path: Path) -> bool:
    """Check if an unreadable lease file is too old to still be mid-write."""
    try:
        mtime = lease_path.stat().st_mtime
    except FileNotFoundError:
        return False
    return time.time() - mtime > WRITE_GRACE_SECONDS


def is_stale_lease(lease: Lease) -> bool:
    """Check if lease is stale (PID dead or heartbeat older than its TTL)."""
    if not _is_pid_running(lease.pid):
        return True

    age = datetime.now() - lease.last_heartbeat
    return age > timedelta(seconds=lease.ttl_seconds)


def _try_atomic_create(lease_path: Path, lease: Lease) -> bool:
    """Attempt atomic lease file creation.

    Returns:
        True if the lease was created, False if the file already exists
    """
    lease_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = os.open(str(lease_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        try:
            os.write(fd, lease.model_dump_json(indent=2).encode())
        finally:
            os.close(fd)
        return True
    except FileExistsError:
        return False


def acquire_lease(
    ferry_dir: Path,
    environment: Environment,
    run_id: str,
    command: str = "deploy",
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> Lease:
    """Acquire the environment lease without waiting.

    Args:
        ferry_dir: Path to .ferry directory
        environment: Environment to lease
        run_id: Run that will own the lease
        command: Command acquiring the lease
        ttl_seconds: Heartbeat age after which the lease counts as stale

    Returns:
        Lease object if acquired

    Raises:
        LockContention: If another run holds an active lease
    """
    lease_path = _lease_path(ferry_dir, environment)
    lease = Lease(
        environment=environment,
        run_id=run_id,
        pid=os.getpid(),
        command=command,
        ttl_seconds=ttl_seconds,
    )

    for _ in range(MAX_LEASE_RETRIES):
        if _try_atomic_create(lease_path, lease):
            return lease

        existing = get_current_lease(ferry_dir, environment)
        if existing is None:
            if _is_abandoned_write(lease_path):
                logger.warning(
                    "Clearing unreadable %s lease left by an interrupted run", environment.value
                )
                with contextlib.suppress(FileNotFoundError):
                    lease_path.unlink()
            # Being written or removed between attempts - retry
            continue

        if existing.is_owned_by(os.getpid(), run_id):
            lease_path.write_text(lease.model_dump_json(indent=2))
            return lease

        if is_stale_lease(existing):
            logger.warning(
                "Clearing stale %s lease held by run %s (PID %d)",
                environment.value,
                existing.run_id,
                existing.pid,
            )
            with contextlib.suppress(FileNotFoundError):
                lease_path.unlink()
            continue

        raise LockContention(
            f"Deploy to {environment.value} already in progress "
            f"(run {existing.run_id}, PID {existing.pid})",
            {"holder": existing.model_dump(mode="json")},
        )

    raise LockContention(
        f"Failed to acquire {environment.value} lease after multiple attempts",
        {"environment": environment.value},
    )


def wait_for_lease(
    ferry_dir: Path,
    environment: Environment,
    run_id: str,
    timeout: float,
    command: str = "deploy",
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    poll_interval: float = WAIT_POLL_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Lease:
    """Acquire the environment lease, waiting for the current holder.

    Raises:
        LockContention: If the lease is still held when ``timeout`` elapses
    """
    deadline = clock() + timeout
    while True:
        try:
            return acquire_lease(ferry_dir, environment, run_id, command, ttl_seconds)
        except LockContention:
            if clock() + poll_interval > deadline:
                raise
            logger.info("Waiting for %s lease", environment.value)
            sleep(poll_interval)


def release_lease(ferry_dir: Path, environment: Environment, run_id: str) -> None:
    """Release the environment lease if owned by this process and run."""
    lease_path = _lease_path(ferry_dir, environment)
    existing = get_current_lease(ferry_dir, environment)

    if existing and existing.is_owned_by(os.getpid(), run_id):
        lease_path.unlink(missing_ok=True)


def update_heartbeat(ferry_dir: Path, environment: Environment, run_id: str) -> None:
    """Update lease heartbeat timestamp.

    Should be called periodically during long operations.
    """
    existing = get_current_lease(ferry_dir, environment)
    if existing and existing.is_owned_by(os.getpid(), run_id):
        existing.last_heartbeat = datetime.now()
        _lease_path(ferry_dir, environment).write_text(existing.model_dump_json(indent=2))
