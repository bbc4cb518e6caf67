"""Repository protocols for the Review bounded context."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol

from stepwise.domain.advisory.value_objects import (
    ContextItem,
    Guidance,
    RepositoryContext,
    SessionSummary,
)
from stepwise.domain.review.entities import (
    ChatMessage,
    ContextPack,
    DraftComment,
    PullRequestSnapshot,
    Repository,
    ReviewerNote,
    ReviewSession,
    ReviewStep,
    SessionContext,
)
from stepwise.domain.review.value_objects import RemotePullRequest, StepDefinition
from stepwise.shared.types import (
    ChatRole,
    CommentStatus,
    DiffSide,
    NoteSeverity,
    StepStatus,
    TargetType,
)

# =============================================================================
# REPOSITORIES & PULL REQUESTS
# =============================================================================


class RepositoryStore(Protocol):
    def get_repository(self, repository_id: str) -> Repository | None: ...

    def find_repository(self, owner: str, name: str) -> Repository | None: ...

    def add_repository(
        self,
        owner: str,
        name: str,
        installation_id: int | None,
        default_branch: str,
    ) -> Repository: ...

    def set_codebase_context(
        self, repository_id: str, context: RepositoryContext
    ) -> None: ...

    def upsert_pull_request(
        self, repository_id: str, remote: RemotePullRequest
    ) -> PullRequestSnapshot:
        """Return the snapshot for ``remote``'s head, creating it if needed."""
        ...


# =============================================================================
# SESSIONS
# =============================================================================


class SessionStore(Protocol):
    def get_session(self, session_id: str) -> ReviewSession | None: ...

    def get_session_context(self, session_id: str) -> SessionContext | None: ...

    def create_session(
        self, pull_request_id: str, head_sha: str, created_by: str
    ) -> ReviewSession: ...

    def move_session(
        self, session_id: str, pull_request_id: str, head_sha: str
    ) -> ReviewSession:
        """Point a session at a new head.

        Clears the stale flag and summary and bumps the generation.
        """
        ...

    def mark_stale(self, session_id: str) -> None: ...

    def clear_stale(self, session_id: str) -> None: ...

    def mark_completed(self, session_id: str) -> None: ...

    def set_summary(self, session_id: str, summary: SessionSummary) -> None: ...

    def list_active_sessions_for(
        self, owner: str, name: str, number: int
    ) -> list[ReviewSession]: ...

    def count_steps(self, session_id: str) -> int: ...


class StepRegeneration(Protocol):
    """Unit of work that replaces a session's steps in one transaction."""

    def lock_session(self) -> ReviewSession | None: ...

    def list_step_ids(self) -> list[str]: ...

    def delete_step_scoped(self, step_ids: list[str]) -> None:
        """Delete context packs, chat messages, notes and drafts of the steps."""
        ...

    def delete_steps(self) -> None: ...

    def insert_steps(self, definitions: list[StepDefinition]) -> list[ReviewStep]: ...

    def set_head_sha(self, head_sha: str) -> None:
        """Record the head the new steps were built from.

        Moving to a different head clears the stale flag.
        """
        ...


class RegenerationStore(Protocol):
    def regeneration(
        self, session_id: str
    ) -> AbstractContextManager[StepRegeneration]: ...


# =============================================================================
# STEPS
# =============================================================================


class StepStore(Protocol):
    def get_step(self, step_id: str) -> ReviewStep | None: ...

    def list_steps(self, session_id: str) -> list[ReviewStep]: ...

    def set_guidance(self, step_id: str, guidance: Guidance) -> None: ...

    def set_step_status(self, step_id: str, status: StepStatus) -> ReviewStep: ...

    def get_context_pack(self, step_id: str) -> ContextPack | None: ...

    def save_context_pack(self, step_id: str, items: list[ContextItem]) -> None:
        """Replace the step's context pack."""
        ...

    def add_note(
        self,
        step_id: str,
        author_id: str,
        severity: NoteSeverity,
        body: str,
    ) -> ReviewerNote: ...

    def list_notes(self, step_id: str) -> list[ReviewerNote]: ...


# =============================================================================
# DRAFT COMMENTS
# =============================================================================


class DraftCommentStore(Protocol):
    def add_draft(
        self,
        step_id: str,
        author_id: str,
        target_type: TargetType,
        body: str,
        path: str | None = None,
        side: DiffSide | None = None,
        line: int | None = None,
        start_line: int | None = None,
        start_side: DiffSide | None = None,
    ) -> DraftComment: ...

    def get_draft(self, comment_id: str) -> DraftComment | None: ...

    def list_drafts(
        self, session_id: str, status: CommentStatus | None = None
    ) -> list[DraftComment]: ...

    def mark_publishing(self, comment_id: str) -> None: ...

    def mark_published(self, comment_id: str, remote_comment_id: str) -> None: ...

    def mark_failed(self, comment_id: str, error_message: str) -> None: ...


# =============================================================================
# CHAT
# =============================================================================


class ChatStore(Protocol):
    def add_chat_message(
        self,
        step_id: str,
        author_id: str,
        role: ChatRole,
        content: str,
    ) -> ChatMessage: ...

    def list_chat_messages(
        self, step_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        """Oldest first; with ``limit``, only the most recent ``limit``."""
        ...


# =============================================================================
# AGGREGATE
# =============================================================================


class ReviewStore(
    RepositoryStore,
    SessionStore,
    RegenerationStore,
    StepStore,
    DraftCommentStore,
    ChatStore,
    Protocol,
):
    """Everything the application layer needs from persistence."""
