"""Lease model for per-environment deploy serialization.

A lease file under .ferry/leases/ marks the environment as owned by one
run. Ownership is the (pid, run_id) pair, so two runs in the same process
still exclude each other.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .run import Environment


class Lease(BaseModel):
    """Active environment lease written to .ferry/leases/<environment>.lock.

    Attributes:
        environment: Environment the lease covers.
        run_id: Run holding the lease.
        pid: Process ID of the lease holder.
        command: Command that acquired the lease.
        acquired_at: When the lease was acquired.
        last_heartbeat: Last heartbeat update (for stale detection).
        ttl_seconds: Heartbeat age after which the lease is stale.
    """

    environment: Environment
    run_id: str = Field(description="Run ID holding the lease")
    pid: int = Field(description="Process ID holding the lease")
    command: str = Field(default="deploy", description="Command that acquired the lease")
    acquired_at: datetime = Field(default_factory=datetime.now)
    last_heartbeat: datetime = Field(default_factory=datetime.now)
    ttl_seconds: int = Field(default=3600, description="Stale after this many seconds")

    def is_owned_by(self, pid: int, run_id: str) -> bool:
        """Whether this lease belongs to the given process and run."""
        return self.pid == pid and self.run_id == run_id
