"""Value objects for the background job queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from stepwise.shared.constants import JOB_BACKOFF_BASE_SECONDS, JOB_MAX_ATTEMPTS

# =============================================================================
# ENUMS
# =============================================================================


class JobType(StrEnum):
    INGEST = "ingest"
    GENERATE_STEPS = "generate_steps"
    GENERATE_GUIDANCE = "generate_guidance"
    BUILD_CONTEXT_PACK = "build_context_pack"
    GATHER_REPO_CONTEXT = "gather_repo_context"


class JobStatus(StrEnum):
    """Lifecycle of a queued job: pending -> running -> done | failed."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True)
class Job:
    """A claimed unit of background work.

    ``job_type`` is kept as a plain string so that rows written by a newer
    release can still be claimed and dropped.
    """

    id: str
    job_type: str
    payload: dict[str, object] = field(default_factory=dict[str, object])
    attempts: int = 0
    status: JobStatus = JobStatus.PENDING
    dedupe_key: str | None = None
    last_error: str | None = None
    available_at: datetime | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``base * 2 ** (attempts - 1)`` between tries."""

    max_attempts: int = JOB_MAX_ATTEMPTS
    base_seconds: float = JOB_BACKOFF_BASE_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)

    def should_retry(self, attempts: int) -> bool:
        return attempts < self.max_attempts

    def delay_for(self, attempts: int) -> float:
        return self.base_seconds * 2 ** max(attempts - 1, 0)
