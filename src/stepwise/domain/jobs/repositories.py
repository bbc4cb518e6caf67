"""Repository protocols for the background job queue."""

from __future__ import annotations

from typing import Protocol

from stepwise.domain.jobs.value_objects import Job, JobType

# =============================================================================
# PROTOCOLS
# =============================================================================


class JobQueuePort(Protocol):
    """Durable queue shared by the API process and the workers."""

    def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, object],
        dedupe_key: str | None = None,
    ) -> str | None:
        """Queue a job; return its id, or None when deduplicated."""
        ...

    def claim(self) -> Job | None:
        """Take the next due pending job, or None if there is none."""
        ...

    def complete(self, job_id: str) -> None: ...

    def fail(self, job_id: str, error: str, fatal: bool = False) -> bool:
        """Record a failure; return True if the job will be retried."""
        ...
