"""Fixtures for Review domain tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from stepwise.domain.review.entities import DraftComment, PullRequestSnapshot
from stepwise.shared.types import (
    CommentId,
    CommitSHA,
    DiffSide,
    PullRequestState,
    RepositoryId,
    StepId,
    TargetType,
)


@pytest.fixture
def pull_request() -> PullRequestSnapshot:
    return PullRequestSnapshot(
        id="pr-1",
        repository_id=RepositoryId("repo-1"),
        number=42,
        title="Add widget cache",
        author_login="bob",
        base_ref="main",
        head_ref="feature/cache",
        base_sha=CommitSHA("c" * 40),
        head_sha=CommitSHA("a" * 40),
        state=PullRequestState.OPEN,
    )


@pytest.fixture
def make_draft() -> Callable[..., DraftComment]:
    counter = iter(range(1, 1000))

    def _make(
        body: str = "Looks off",
        target_type: TargetType = TargetType.CONVERSATION,
        path: str | None = None,
        line: int | None = None,
        start_line: int | None = None,
    ) -> DraftComment:
        return DraftComment(
            id=CommentId(f"c-{next(counter)}"),
            step_id=StepId("step-1"),
            author_id="alice",
            target_type=target_type,
            body=body,
            path=path,
            side=DiffSide.RIGHT if line is not None else None,
            line=line,
            start_line=start_line,
        )

    return _make
