"""Domain services for the Review bounded context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from stepwise.domain.review.entities import DraftComment, PullRequestSnapshot
from stepwise.domain.review.value_objects import DiffHunk, FileChange, StepDefinition
from stepwise.shared.constants import (
    APPROVE_PLACEHOLDER_BODY,
    CONVERSATION_BODY_SEPARATOR,
    HIGH_IMPACT_ADDITIONS,
    HIGH_IMPACT_TAG,
    INLINE_PLACEHOLDER_BODY,
    LARGE_STEP_CHANGED_LINES,
    MEDIUM_STEP_CHANGED_LINES,
    MODIFICATION_CATEGORY,
    NEW_FILE_CATEGORY,
)
from stepwise.shared.exceptions import ValidationError
from stepwise.shared.types import Complexity, ReviewEvent

# =============================================================================
# STEP PARTITIONING
# =============================================================================


class StepPartitioner(Protocol):
    """Groups a change set into ordered review steps."""

    def partition(
        self,
        files: list[FileChange],
        pull_request: PullRequestSnapshot,
    ) -> list[StepDefinition]: ...


def complexity_for(changed_lines: int) -> Complexity:
    if changed_lines > LARGE_STEP_CHANGED_LINES:
        return Complexity.L
    if changed_lines > MEDIUM_STEP_CHANGED_LINES:
        return Complexity.M
    return Complexity.S


@dataclass
class PerFileStepPartitioner:
    """One step per changed file, in the order the files were reported."""

    def partition(
        self,
        files: list[FileChange],
        pull_request: PullRequestSnapshot,
    ) -> list[StepDefinition]:
        return [self._step_for(f) for f in files]

    def _step_for(self, change: FileChange) -> StepDefinition:
        tags: frozenset[str] = frozenset()
        if change.additions > HIGH_IMPACT_ADDITIONS:
            tags = frozenset({HIGH_IMPACT_TAG})
        return StepDefinition(
            title=f"Review {change.path}",
            category=NEW_FILE_CATEGORY if change.is_added else MODIFICATION_CATEGORY,
            complexity=complexity_for(change.changed_lines),
            risk_tags=tags,
            diff_hunks=[DiffHunk(path=change.path, patch=change.patch or "")],
        )


# =============================================================================
# SUBMISSION
# =============================================================================


@dataclass(frozen=True)
class DraftPartition:
    """Drafts split by how they will be published."""

    inline: list[DraftComment] = field(default_factory=list[DraftComment])
    conversation: list[DraftComment] = field(default_factory=list[DraftComment])
    skipped: list[DraftComment] = field(default_factory=list[DraftComment])


def partition_drafts(drafts: list[DraftComment]) -> DraftPartition:
    """Split drafts into inline, conversation and skipped.

    Inline drafts without a path or line are skipped: they stay drafts and
    are never marked failed.
    """
    inline: list[DraftComment] = []
    conversation: list[DraftComment] = []
    skipped: list[DraftComment] = []
    for draft in drafts:
        if not draft.is_inline:
            conversation.append(draft)
        elif draft.has_location:
            inline.append(draft)
        else:
            skipped.append(draft)
    return DraftPartition(inline=inline, conversation=conversation, skipped=skipped)


@dataclass(frozen=True)
class ReviewBody:
    text: str
    from_conversation: bool = False


def resolve_review_body(
    explicit: str | None,
    event: ReviewEvent,
    drafts: DraftPartition,
) -> ReviewBody:
    """Pick the body for the formal review.

    Order of preference: the reviewer's own text, the conversation drafts
    joined together (only when there are no inline drafts), then a
    placeholder pointing at the inline comments.

    Raises:
        ValidationError: If there is neither a body nor any inline draft.
    """
    text = (explicit or "").strip()
    if text:
        return ReviewBody(text=text)
    if not drafts.inline and drafts.conversation:
        return ReviewBody(
            text=CONVERSATION_BODY_SEPARATOR.join(d.body for d in drafts.conversation),
            from_conversation=True,
        )
    if drafts.inline:
        if event == ReviewEvent.APPROVE:
            return ReviewBody(text=APPROVE_PLACEHOLDER_BODY)
        return ReviewBody(text=INLINE_PLACEHOLDER_BODY)
    msg = "A review must include either a body or at least one inline comment"
    raise ValidationError(msg)


def fallback_comment_body(draft: DraftComment) -> str:
    """Body for an inline draft re-posted as a conversation comment."""
    return f"**{draft.location_label}**\n\n{draft.body}"
