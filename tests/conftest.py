"""Fixtures shared across the Stepwise test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from stepwise.domain.review.entities import ReviewStep, SessionContext
from stepwise.domain.review.value_objects import (
    DiffHunk,
    RemotePullRequest,
    StepDefinition,
)
from stepwise.infrastructure.persistence.database import Database
from stepwise.infrastructure.persistence.job_queue import SqlJobQueue
from stepwise.infrastructure.persistence.store import SqlReviewStore
from stepwise.shared.types import (
    CommitSHA,
    Complexity,
    FilePath,
    PullRequestState,
)

HEAD_SHA = "a" * 40
NEW_HEAD_SHA = "b" * 40
OWNER = "acme"
REPO = "widgets"
PR_NUMBER = 42
REVIEWER = "alice"

# =============================================================================
# Persistence
# =============================================================================


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    db = Database(f"sqlite:///{tmp_path / 'stepwise.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def store(database: Database) -> SqlReviewStore:
    return SqlReviewStore(database)


@pytest.fixture
def queue(database: Database) -> SqlJobQueue:
    return SqlJobQueue(database)


# =============================================================================
# Remote state
# =============================================================================


@pytest.fixture
def make_remote_pr() -> Callable[..., RemotePullRequest]:
    def _make(
        head_sha: str = HEAD_SHA,
        state: PullRequestState = PullRequestState.OPEN,
        number: int = PR_NUMBER,
    ) -> RemotePullRequest:
        return RemotePullRequest(
            number=number,
            title="Add widget cache",
            author_login="bob",
            state=state,
            head_sha=CommitSHA(head_sha),
            head_ref="feature/cache",
            base_sha=CommitSHA("c" * 40),
            base_ref="main",
        )

    return _make


@pytest.fixture
def mock_vcs(make_remote_pr: Callable[..., RemotePullRequest]) -> MagicMock:
    """VCS client whose PR is open and still at ``HEAD_SHA``."""
    vcs = MagicMock()
    vcs.get_pull_request.return_value = make_remote_pr()
    vcs.get_default_branch.return_value = "main"
    vcs.create_review.return_value = "review-1"
    vcs.create_issue_comment.side_effect = lambda ref, body: f"issue-{len(body)}"
    vcs.create_review_comment.return_value = "inline-1"
    return vcs


# =============================================================================
# Seeded records
# =============================================================================


@pytest.fixture
def make_session(
    store: SqlReviewStore, make_remote_pr: Callable[..., RemotePullRequest]
) -> Callable[..., SessionContext]:
    """Persist a repository, PR snapshot and active session."""

    def _make(
        head_sha: str = HEAD_SHA,
        created_by: str = REVIEWER,
        state: PullRequestState = PullRequestState.OPEN,
    ) -> SessionContext:
        repo = store.find_repository(OWNER, REPO) or store.add_repository(
            OWNER, REPO, None, "main"
        )
        pr = store.upsert_pull_request(repo.id, make_remote_pr(head_sha, state))
        session = store.create_session(pr.id, head_sha, created_by)
        ctx = store.get_session_context(session.id)
        assert ctx is not None
        return ctx

    return _make


@pytest.fixture
def make_steps(store: SqlReviewStore) -> Callable[..., list[ReviewStep]]:
    """Insert ``count`` steps into a session through the regeneration unit."""

    def _make(session_id: str, count: int = 2) -> list[ReviewStep]:
        definitions = [
            StepDefinition(
                title=f"Review src/module_{i}.py",
                category="Modification",
                complexity=Complexity.S,
                diff_hunks=[
                    DiffHunk(
                        path=FilePath(f"src/module_{i}.py"),
                        patch=f"@@ -1 +1 @@\n-old_{i}\n+new_{i}",
                    )
                ],
            )
            for i in range(count)
        ]
        with store.regeneration(session_id) as uow:
            uow.lock_session()
            return uow.insert_steps(definitions)

    return _make
