"""Session lifecycle use cases: start, refresh, staleness and reviewer input."""

from __future__ import annotations

import logging

from dataclasses import dataclass
from typing import TypeVar

from stepwise.application.dto import (
    RefreshResult,
    SessionStatusResult,
    StartReviewCommand,
    StartReviewResult,
)
from stepwise.application.ports import VcsClientPort
from stepwise.domain.jobs.repositories import JobQueuePort
from stepwise.domain.jobs.value_objects import JobType
from stepwise.domain.review.entities import (
    DraftComment,
    ReviewerNote,
    ReviewStep,
    SessionContext,
)
from stepwise.domain.review.repositories import ReviewStore
from stepwise.shared.exceptions import (
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from stepwise.shared.types import (
    DiffSide,
    NoteSeverity,
    PullRequestRef,
    StepStatus,
    TargetType,
)

logger = logging.getLogger(__name__)

E = TypeVar("E")


def ingest_dedupe_key(session_id: str, head_sha: str) -> str:
    """One live ingest per session and head: repeated clicks collapse."""
    return f"ingest-{session_id}-{head_sha}"


def _parse_enum(enum_type: type[E], raw: str | None, field_name: str) -> E:
    if not raw:
        msg = f"Missing required field: {field_name}"
        raise ValidationError(msg)
    try:
        return enum_type(raw)  # type: ignore[call-arg]
    except ValueError:
        msg = f"Invalid {field_name}: {raw!r}"
        raise ValidationError(msg) from None


# =============================================================================
# USE CASES
# =============================================================================


@dataclass
class ReviewSessions:
    """Everything a reviewer does to a session besides submitting it."""

    store: ReviewStore
    vcs: VcsClientPort
    queue: JobQueuePort

    # =================================================================
    # Start & refresh
    # =================================================================

    def start_review(self, cmd: StartReviewCommand) -> StartReviewResult:
        """Open a session on a PR's current head and queue ingestion.

        Raises:
            ExternalServiceError: If GitHub could not be reached.
        """
        ref = PullRequestRef(owner=cmd.owner, repo=cmd.repo, number=cmd.number)
        remote = self.vcs.get_pull_request(ref)

        repo = self.store.find_repository(cmd.owner, cmd.repo)
        if repo is None:
            default_branch = self.vcs.get_default_branch(cmd.owner, cmd.repo)
            repo = self.store.add_repository(
                cmd.owner, cmd.repo, cmd.installation_id, default_branch
            )
            logger.info("Registered repository %s", repo.full_name)
            self.queue.enqueue(
                JobType.GATHER_REPO_CONTEXT,
                {"repository_id": repo.id},
                dedupe_key=f"repo-context-{repo.id}",
            )

        pr = self.store.upsert_pull_request(repo.id, remote)
        session = self.store.create_session(pr.id, remote.head_sha, cmd.created_by)
        job_id = self.queue.enqueue(
            JobType.INGEST,
            {"session_id": session.id, "generation": session.generation},
            dedupe_key=ingest_dedupe_key(session.id, remote.head_sha),
        )
        logger.info("Started session %s on %s at %s", session.id, ref, remote.head_sha[:12])
        return StartReviewResult(
            session_id=session.id,
            repository_id=repo.id,
            head_sha=remote.head_sha,
            ingest_job_id=job_id,
        )

    def refresh(self, session_id: str, user_id: str | None = None) -> RefreshResult:
        """Move a session to the PR's latest head and regenerate its steps.

        Raises:
            NotFoundError: If the session does not exist.
            ForbiddenError: If ``user_id`` does not own the session.
            ExternalServiceError: If GitHub could not be reached.
        """
        ctx = self._require_context(session_id, user_id)
        remote = self.vcs.get_pull_request(ctx.ref)
        if remote.head_sha == ctx.session.head_sha:
            if ctx.session.is_stale:
                self.store.clear_stale(session_id)
            return RefreshResult(
                session_id=session_id, refreshed=False, head_sha=remote.head_sha
            )

        pr = self.store.upsert_pull_request(ctx.repository.id, remote)
        session = self.store.move_session(session_id, pr.id, remote.head_sha)
        job_id = self.queue.enqueue(
            JobType.INGEST,
            {"session_id": session_id, "generation": session.generation},
            dedupe_key=ingest_dedupe_key(session_id, remote.head_sha),
        )
        logger.info(
            "Refreshed session %s to %s (generation %d)",
            session_id,
            remote.head_sha[:12],
            session.generation,
        )
        return RefreshResult(
            session_id=session_id,
            refreshed=True,
            head_sha=remote.head_sha,
            ingest_job_id=job_id,
        )

    # =================================================================
    # Staleness
    # =================================================================

    def check_staleness(self, session_id: str) -> bool:
        """View-time check against the remote head.

        The stored flag follows the remote in both directions. A GitHub
        failure is logged and the stored flag is returned.

        Raises:
            NotFoundError: If the session does not exist.
        """
        ctx = self._require_context(session_id)
        try:
            remote = self.vcs.get_pull_request(ctx.ref)
        except ExternalServiceError as e:
            logger.warning("Staleness check failed for %s: %s", session_id, e)
            return ctx.session.is_stale
        stale = remote.head_sha != ctx.session.head_sha
        if stale and not ctx.session.is_stale:
            self.store.mark_stale(session_id)
        elif not stale and ctx.session.is_stale:
            self.store.clear_stale(session_id)
        return stale

    def mark_stale_from_push(
        self, owner: str, repo: str, number: int, head_sha: str
    ) -> list[str]:
        """Flag every active session on the PR that is behind ``head_sha``."""
        flagged: list[str] = []
        for session in self.store.list_active_sessions_for(owner, repo, number):
            if session.head_sha != head_sha and not session.is_stale:
                self.store.mark_stale(session.id)
                flagged.append(session.id)
        if flagged:
            logger.info(
                "Push to %s/%s#%d made %d session(s) stale",
                owner,
                repo,
                number,
                len(flagged),
            )
        return flagged

    # =================================================================
    # Guidance & status
    # =================================================================

    def regenerate_guidance(self, session_id: str) -> str | None:
        self._require_context(session_id)
        return self.queue.enqueue(JobType.GENERATE_GUIDANCE, {"session_id": session_id})

    def status(self, session_id: str) -> SessionStatusResult:
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return SessionStatusResult(
            session_id=session_id,
            status=session.status,
            step_count=self.store.count_steps(session_id),
            is_stale=session.is_stale,
            head_sha=session.head_sha,
            generation=session.generation,
            has_summary=session.summary is not None,
        )

    # =================================================================
    # Reviewer input
    # =================================================================

    def create_draft_comment(
        self,
        step_id: str,
        author_id: str,
        target_type: str | None,
        body: str | None,
        path: str | None = None,
        side: str | None = None,
        line: int | None = None,
        start_line: int | None = None,
        start_side: str | None = None,
    ) -> DraftComment:
        """Save a draft; it is published only when the review is submitted.

        Raises:
            ValidationError: If the target type or body is missing or invalid.
            NotFoundError: If the step does not exist.
        """
        target = _parse_enum(TargetType, target_type, "target_type")
        if not body or not body.strip():
            msg = "Missing required field: body"
            raise ValidationError(msg)
        if target == TargetType.CONVERSATION:
            return self.store.add_draft(step_id, author_id, target, body)
        return self.store.add_draft(
            step_id,
            author_id,
            target,
            body,
            path=path,
            side=_parse_enum(DiffSide, side, "side") if side else None,
            line=line,
            start_line=start_line,
            start_side=(
                _parse_enum(DiffSide, start_side, "start_side") if start_side else None
            ),
        )

    def add_reviewer_note(
        self,
        step_id: str,
        author_id: str,
        severity: str | None,
        body: str | None,
    ) -> ReviewerNote:
        """Raises ValidationError if severity or body is missing."""
        level = _parse_enum(NoteSeverity, severity, "severity")
        if not body or not body.strip():
            msg = "Missing required field: body"
            raise ValidationError(msg)
        return self.store.add_note(step_id, author_id, level, body)

    def update_step_status(self, step_id: str, status: str | None) -> ReviewStep:
        return self.store.set_step_status(
            step_id, _parse_enum(StepStatus, status, "status")
        )

    # =================================================================
    # Helpers
    # =================================================================

    def _require_context(
        self, session_id: str, user_id: str | None = None
    ) -> SessionContext:
        ctx = self.store.get_session_context(session_id)
        if ctx is None:
            raise NotFoundError("Session", session_id)
        if user_id is not None and ctx.session.created_by != user_id:
            msg = f"User {user_id} does not own session {session_id}"
            raise ForbiddenError(msg)
        return ctx
