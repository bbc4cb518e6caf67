"""Application-layer command and result DTOs."""

from __future__ import annotations

from dataclasses import dataclass, field

from stepwise.shared.types import CommentStatus, CommitSHA, SessionStatus

# =============================================================================
# START / REFRESH
# =============================================================================


@dataclass(frozen=True)
class StartReviewCommand:
    owner: str
    repo: str
    number: int
    created_by: str
    installation_id: int | None = None


@dataclass(frozen=True)
class StartReviewResult:
    session_id: str
    repository_id: str
    head_sha: CommitSHA
    ingest_job_id: str | None


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of a refresh; ``refreshed`` is False when the head is unchanged."""

    session_id: str
    refreshed: bool
    head_sha: CommitSHA
    ingest_job_id: str | None = None


@dataclass(frozen=True)
class SessionStatusResult:
    session_id: str
    status: SessionStatus
    step_count: int
    is_stale: bool
    head_sha: CommitSHA
    generation: int
    has_summary: bool


# =============================================================================
# SUBMIT REVIEW
# =============================================================================


@dataclass(frozen=True)
class SubmitReviewCommand:
    """Request to publish a session's feedback as a formal review.

    ``event`` stays a raw string so validation can reject unknown verdicts.
    """

    session_id: str
    event: str
    body: str | None = None


@dataclass(frozen=True)
class CommentOutcome:
    """What happened to one draft during publication."""

    comment_id: str
    status: CommentStatus
    remote_comment_id: str | None = None
    error_message: str | None = None
    used_fallback: bool = False


@dataclass(frozen=True)
class SubmitReviewResult:
    session_id: str
    review_id: str | None
    body: str
    outcomes: list[CommentOutcome] = field(default_factory=list[CommentOutcome])
    skipped_comment_ids: list[str] = field(default_factory=list[str])

    @property
    def failed(self) -> list[CommentOutcome]:
        return [o for o in self.outcomes if o.status == CommentStatus.FAILED]
