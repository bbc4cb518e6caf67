"""Tests for Review domain services."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from stepwise.domain.review.entities import DraftComment, PullRequestSnapshot
from stepwise.domain.review.services import (
    PerFileStepPartitioner,
    complexity_for,
    fallback_comment_body,
    partition_drafts,
    resolve_review_body,
)
from stepwise.domain.review.value_objects import FileChange
from stepwise.shared.constants import (
    APPROVE_PLACEHOLDER_BODY,
    CONVERSATION_BODY_SEPARATOR,
    INLINE_PLACEHOLDER_BODY,
)
from stepwise.shared.exceptions import ValidationError
from stepwise.shared.types import Complexity, FilePath, ReviewEvent, TargetType

# =============================================================================
# PerFileStepPartitioner
# =============================================================================


def test_partitioner_emits_one_step_per_file_in_order(
    pull_request: PullRequestSnapshot,
) -> None:
    files = [
        FileChange(path=FilePath("src/new.py"), status="added", additions=60, patch="+x"),
        FileChange(path=FilePath("src/old.py"), status="modified", additions=2, deletions=1),
    ]

    steps = PerFileStepPartitioner().partition(files, pull_request)

    assert [s.title for s in steps] == ["Review src/new.py", "Review src/old.py"]
    assert steps[0].category == "New File"
    assert steps[0].risk_tags == frozenset({"high-impact"})
    assert steps[1].category == "Modification"
    assert steps[1].risk_tags == frozenset()


def test_partitioner_keeps_binary_files_with_empty_patch(
    pull_request: PullRequestSnapshot,
) -> None:
    files = [FileChange(path=FilePath("logo.png"), status="added")]

    (step,) = PerFileStepPartitioner().partition(files, pull_request)

    assert step.diff_hunks[0].patch == ""


def test_partitioner_of_empty_change_set_is_empty(
    pull_request: PullRequestSnapshot,
) -> None:
    assert PerFileStepPartitioner().partition([], pull_request) == []


@pytest.mark.parametrize(
    ("changed", "expected"),
    [(0, Complexity.S), (30, Complexity.S), (31, Complexity.M), (101, Complexity.L)],
)
def test_complexity_thresholds(changed: int, expected: Complexity) -> None:
    assert complexity_for(changed) == expected


# =============================================================================
# partition_drafts
# =============================================================================


def test_partition_drafts_splits_by_target_and_location(
    make_draft: Callable[..., DraftComment],
) -> None:
    conversation = make_draft()
    inline = make_draft(target_type=TargetType.INLINE, path="a.py", line=3)
    homeless = make_draft(target_type=TargetType.INLINE)

    result = partition_drafts([conversation, inline, homeless])

    assert result.conversation == [conversation]
    assert result.inline == [inline]
    assert result.skipped == [homeless]


# =============================================================================
# resolve_review_body
# =============================================================================


def test_explicit_body_wins(make_draft: Callable[..., DraftComment]) -> None:
    drafts = partition_drafts([make_draft(body="convo")])

    body = resolve_review_body("  My verdict  ", ReviewEvent.COMMENT, drafts)

    assert body.text == "My verdict"
    assert not body.from_conversation


def test_conversation_drafts_become_the_body_when_no_inline(
    make_draft: Callable[..., DraftComment],
) -> None:
    drafts = partition_drafts([make_draft(body="first"), make_draft(body="second")])

    body = resolve_review_body(None, ReviewEvent.COMMENT, drafts)

    assert body.text == f"first{CONVERSATION_BODY_SEPARATOR}second"
    assert body.from_conversation


def test_inline_only_gets_placeholder(make_draft: Callable[..., DraftComment]) -> None:
    drafts = partition_drafts(
        [make_draft(target_type=TargetType.INLINE, path="a.py", line=1)]
    )

    assert resolve_review_body("", ReviewEvent.COMMENT, drafts).text == (
        INLINE_PLACEHOLDER_BODY
    )
    assert resolve_review_body("", ReviewEvent.APPROVE, drafts).text == (
        APPROVE_PLACEHOLDER_BODY
    )


def test_inline_drafts_keep_conversation_out_of_the_body(
    make_draft: Callable[..., DraftComment],
) -> None:
    drafts = partition_drafts(
        [
            make_draft(body="convo"),
            make_draft(target_type=TargetType.INLINE, path="a.py", line=1),
        ]
    )

    body = resolve_review_body(None, ReviewEvent.COMMENT, drafts)

    assert body.text == INLINE_PLACEHOLDER_BODY


def test_nothing_to_submit_is_rejected() -> None:
    with pytest.raises(ValidationError, match="body or at least one inline"):
        resolve_review_body(None, ReviewEvent.COMMENT, partition_drafts([]))


# =============================================================================
# fallback_comment_body
# =============================================================================


def test_fallback_body_prefixes_location(
    make_draft: Callable[..., DraftComment],
) -> None:
    draft = make_draft(
        body="Off by one", target_type=TargetType.INLINE, path="a.py", line=9, start_line=7
    )

    assert fallback_comment_body(draft) == "**a.py:L7-L9**\n\nOff by one"
