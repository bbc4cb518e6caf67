"""Submit Review use case."""

from __future__ import annotations

import logging

from dataclasses import dataclass

from stepwise.application.dto import (
    CommentOutcome,
    SubmitReviewCommand,
    SubmitReviewResult,
)
from stepwise.application.ports import VcsClientPort
from stepwise.domain.review.entities import DraftComment
from stepwise.domain.review.repositories import ReviewStore
from stepwise.domain.review.services import (
    fallback_comment_body,
    partition_drafts,
    resolve_review_body,
)
from stepwise.shared.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ReviewCommentRejectedError,
    ValidationError,
)
from stepwise.shared.types import CommentStatus, PullRequestRef, ReviewEvent

logger = logging.getLogger(__name__)


def _parse_event(raw: str) -> ReviewEvent:
    try:
        return ReviewEvent(raw)
    except ValueError:
        valid = ", ".join(e.value for e in ReviewEvent)
        msg = f"Invalid event {raw!r}. Must be one of: {valid}"
        raise ValidationError(msg) from None


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


# =============================================================================
# USE CASE
# =============================================================================


@dataclass
class SubmitReview:
    """Publishes a session's feedback to the pull request.

    Steps:
    1. Validate the verdict (no network)
    2. Compare the remote head with the session's head
    3. Split draft comments into inline, conversation and skipped
    4. Resolve the review body
    5. Create the formal review (open PR) or a plain comment (closed PR)
    6. Publish conversation drafts, each failure isolated
    7. Publish inline drafts, falling back to a conversation comment
    8. Mark the session completed

    Only step 5 is all-or-nothing: a failure there aborts the submission
    before any draft changes state.
    """

    store: ReviewStore
    vcs: VcsClientPort

    def execute(self, cmd: SubmitReviewCommand) -> SubmitReviewResult:
        """Run the submission.

        Raises:
            ValidationError: Bad verdict, missing body, or nothing to submit.
            NotFoundError: If the session does not exist.
            ConflictError: If the PR moved past the session's head commit.
            ExternalServiceError: If the review itself could not be created.
        """
        # 1. Validate before touching anything remote
        event = _parse_event(cmd.event)
        if event == ReviewEvent.REQUEST_CHANGES and not (cmd.body or "").strip():
            msg = "A comment is required when requesting changes"
            raise ValidationError(msg)

        ctx = self.store.get_session_context(cmd.session_id)
        if ctx is None:
            raise NotFoundError("Session", cmd.session_id)
        ref = ctx.ref
        head_sha = ctx.session.head_sha

        # 2. Staleness precondition
        remote = self.vcs.get_pull_request(ref)
        if remote.head_sha != head_sha:
            logger.warning(
                "Session %s is stale: at %s, %s is at %s",
                cmd.session_id,
                head_sha[:12],
                ref,
                remote.head_sha[:12],
            )
            self.store.mark_stale(cmd.session_id)
            raise ConflictError(head_sha, remote.head_sha)

        # 3. Partition drafts
        drafts = partition_drafts(
            self.store.list_drafts(cmd.session_id, status=CommentStatus.DRAFT)
        )
        if drafts.skipped:
            logger.info(
                "Leaving %d inline draft(s) without a location as drafts",
                len(drafts.skipped),
            )

        # 4. Resolve body
        body = resolve_review_body(cmd.body, event, drafts)

        # 5. Formal review, or a plain comment on a closed PR
        review_id: str | None = None
        if remote.is_open:
            review_id = self.vcs.create_review(ref, event, body.text, head_sha)
            logger.info("Created %s review %s on %s", event, review_id, ref)
        elif body.text and not body.from_conversation:
            self.vcs.create_issue_comment(ref, body.text)
            logger.info("%s is closed, posted review body as a comment", ref)

        # 6. Conversation drafts
        outcomes = [self._publish_conversation(ref, d) for d in drafts.conversation]

        # 7. Inline drafts
        outcomes.extend(
            self._publish_inline(ref, head_sha, d) for d in drafts.inline
        )

        # 8. Complete
        self.store.mark_completed(cmd.session_id)
        result = SubmitReviewResult(
            session_id=cmd.session_id,
            review_id=review_id,
            body=body.text,
            outcomes=outcomes,
            skipped_comment_ids=[d.id for d in drafts.skipped],
        )
        logger.info(
            "Submitted session %s: %d comment(s), %d failed",
            cmd.session_id,
            len(outcomes),
            len(result.failed),
        )
        return result

    def publish_draft(self, comment_id: str) -> CommentOutcome:
        """Publish a single draft outside a full review.

        Raises:
            NotFoundError: If the draft, its step or its session is gone.
            ValidationError: If the draft was already published.
            ExternalServiceError: If GitHub rejected the comment. The draft
                is marked failed before any error propagates.
        """
        draft = self.store.get_draft(comment_id)
        if draft is None:
            raise NotFoundError("Draft comment", comment_id)
        if draft.status == CommentStatus.PUBLISHED:
            msg = f"Draft comment {comment_id} is already published"
            raise ValidationError(msg)
        if draft.is_inline and not draft.has_location:
            msg = f"Inline draft comment {comment_id} needs a path and line"
            raise ValidationError(msg)
        step = self.store.get_step(draft.step_id)
        if step is None:
            raise NotFoundError("Step", draft.step_id)
        ctx = self.store.get_session_context(step.session_id)
        if ctx is None:
            raise NotFoundError("Session", step.session_id)

        self.store.mark_publishing(comment_id)
        try:
            if draft.is_inline:
                remote_id = self._create_review_comment(
                    ctx.ref, ctx.session.head_sha, draft
                )
            else:
                remote_id = self.vcs.create_issue_comment(ctx.ref, draft.body)
        except Exception as e:
            self.store.mark_failed(comment_id, _describe(e))
            raise
        self.store.mark_published(comment_id, remote_id)
        return CommentOutcome(
            comment_id=comment_id,
            status=CommentStatus.PUBLISHED,
            remote_comment_id=remote_id,
        )

    # =================================================================
    # Per-draft publication
    # =================================================================

    def _publish_conversation(
        self, ref: PullRequestRef, draft: DraftComment
    ) -> CommentOutcome:
        self.store.mark_publishing(draft.id)
        try:
            remote_id = self.vcs.create_issue_comment(ref, draft.body)
        except ExternalServiceError as e:
            logger.warning("Conversation comment %s failed: %s", draft.id, e)
            return self._failed(draft, str(e))
        except Exception as e:
            logger.exception("Conversation comment %s failed unexpectedly", draft.id)
            return self._failed(draft, _describe(e))
        return self._published(draft, remote_id)

    def _publish_inline(
        self, ref: PullRequestRef, head_sha: str, draft: DraftComment
    ) -> CommentOutcome:
        self.store.mark_publishing(draft.id)
        try:
            remote_id = self._create_review_comment(ref, head_sha, draft)
        except ReviewCommentRejectedError as e:
            logger.info(
                "Inline comment %s rejected (%s), posting as conversation comment",
                draft.id,
                e.reason,
            )
            try:
                remote_id = self.vcs.create_issue_comment(
                    ref, fallback_comment_body(draft)
                )
            except Exception as fallback_error:
                logger.warning(
                    "Fallback for inline comment %s failed: %s",
                    draft.id,
                    fallback_error,
                )
                return self._failed(draft, _describe(fallback_error))
            return self._published(draft, remote_id, used_fallback=True)
        except ExternalServiceError as e:
            logger.warning("Inline comment %s failed: %s", draft.id, e)
            return self._failed(draft, str(e))
        except Exception as e:
            logger.exception("Inline comment %s failed unexpectedly", draft.id)
            return self._failed(draft, _describe(e))
        return self._published(draft, remote_id)

    def _create_review_comment(
        self, ref: PullRequestRef, head_sha: str, draft: DraftComment
    ) -> str:
        if draft.path is None or draft.line is None:
            msg = f"Draft comment {draft.id} has no diff location"
            raise ValidationError(msg)
        return self.vcs.create_review_comment(
            ref,
            draft.body,
            head_sha,
            draft.path,
            draft.line,
            side=draft.side,
            start_line=draft.start_line,
            start_side=draft.start_side,
        )

    def _published(
        self, draft: DraftComment, remote_id: str, used_fallback: bool = False
    ) -> CommentOutcome:
        self.store.mark_published(draft.id, remote_id)
        return CommentOutcome(
            comment_id=draft.id,
            status=CommentStatus.PUBLISHED,
            remote_comment_id=remote_id,
            used_fallback=used_fallback,
        )

    def _failed(self, draft: DraftComment, error: str) -> CommentOutcome:
        self.store.mark_failed(draft.id, error)
        return CommentOutcome(
            comment_id=draft.id,
            status=CommentStatus.FAILED,
            error_message=error,
        )
