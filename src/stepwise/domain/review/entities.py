"""Entities for the Review bounded context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from stepwise.domain.advisory.value_objects import (
    ContextItem,
    Guidance,
    InlineExplanation,
    RepositoryContext,
    SessionSummary,
)
from stepwise.domain.review.value_objects import DiffHunk
from stepwise.shared.types import (
    ChatRole,
    CommentId,
    CommentStatus,
    CommitSHA,
    Complexity,
    DiffSide,
    NoteSeverity,
    PullRequestRef,
    PullRequestState,
    RepositoryId,
    SessionId,
    SessionStatus,
    StepId,
    StepStatus,
    TargetType,
)

# =============================================================================
# REPOSITORY & PULL REQUEST
# =============================================================================


@dataclass(frozen=True)
class Repository:
    id: RepositoryId
    owner: str
    name: str
    installation_id: int | None = None
    default_branch: str = "main"
    codebase_context: RepositoryContext | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class PullRequestSnapshot:
    """A pull request as it was at one head commit."""

    id: str
    repository_id: RepositoryId
    number: int
    title: str
    author_login: str
    base_ref: str
    head_ref: str
    base_sha: CommitSHA
    head_sha: CommitSHA
    state: PullRequestState


# =============================================================================
# SESSION
# =============================================================================


@dataclass(frozen=True)
class ReviewSession:
    """One reviewer's pass over one pull request at one commit.

    ``head_sha`` is the commit the currently materialized steps were
    generated from. ``generation`` increases on every refresh so that step
    regeneration jobs queued for an older head can be recognized and dropped.
    """

    id: SessionId
    pull_request_id: str
    head_sha: CommitSHA
    created_by: str
    status: SessionStatus = SessionStatus.ACTIVE
    is_stale: bool = False
    generation: int = 0
    summary: SessionSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED


@dataclass(frozen=True)
class SessionContext:
    """A session joined with the pull request and repository it reviews."""

    session: ReviewSession
    pull_request: PullRequestSnapshot
    repository: Repository

    @property
    def ref(self) -> PullRequestRef:
        return PullRequestRef(
            owner=self.repository.owner,
            repo=self.repository.name,
            number=self.pull_request.number,
        )


# =============================================================================
# STEPS
# =============================================================================


@dataclass(frozen=True)
class ReviewStep:
    id: StepId
    session_id: SessionId
    order_index: int
    title: str
    category: str
    complexity: Complexity
    risk_tags: frozenset[str] = field(default_factory=frozenset[str])
    status: StepStatus = StepStatus.NOT_STARTED
    diff_hunks: list[DiffHunk] = field(default_factory=list[DiffHunk])
    guidance: Guidance | None = None
    inline_explanations: list[InlineExplanation] | None = None

    @property
    def diff_text(self) -> str:
        """All hunks rendered as ``File: <path>`` blocks."""
        return "\n\n".join(f"File: {h.path}\n{h.patch}" for h in self.diff_hunks)


@dataclass(frozen=True)
class ContextPack:
    step_id: StepId
    items: list[ContextItem] = field(default_factory=list[ContextItem])

    def render(self) -> str:
        return "\n\n".join(f"{i.type}: {i.path}\n{i.snippet}" for i in self.items)


@dataclass(frozen=True)
class ReviewerNote:
    """A private note a reviewer leaves on a step. Never published."""

    id: str
    step_id: StepId
    author_id: str
    severity: NoteSeverity
    body: str
    created_at: datetime | None = None


# =============================================================================
# DRAFT COMMENTS
# =============================================================================


@dataclass(frozen=True)
class DraftComment:
    """Reviewer feedback waiting to be published.

    Only the submission engine moves a draft through
    ``draft -> publishing -> published | failed``.
    """

    id: CommentId
    step_id: StepId
    author_id: str
    target_type: TargetType
    body: str
    status: CommentStatus = CommentStatus.DRAFT
    path: str | None = None
    side: DiffSide | None = None
    line: int | None = None
    start_line: int | None = None
    start_side: DiffSide | None = None
    remote_comment_id: str | None = None
    error_message: str | None = None

    @property
    def is_inline(self) -> bool:
        return self.target_type == TargetType.INLINE

    @property
    def has_location(self) -> bool:
        return bool(self.path) and self.line is not None

    @property
    def location_label(self) -> str:
        """``path:line`` or ``path:Lstart-Lend`` for multi-line comments."""
        if self.start_line is not None and self.start_line != self.line:
            return f"{self.path}:L{self.start_line}-L{self.line}"
        return f"{self.path}:{self.line}"


# =============================================================================
# CHAT
# =============================================================================


@dataclass(frozen=True)
class ChatMessage:
    id: str
    step_id: StepId
    author_id: str
    role: ChatRole
    content: str
    created_at: datetime | None = None
