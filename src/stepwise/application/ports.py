"""Ports for the external systems the use cases talk to."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from stepwise.domain.llm.value_objects import ChatTurn
from stepwise.domain.review.value_objects import (
    FileChange,
    RemotePullRequest,
    TreeEntry,
)
from stepwise.shared.types import DiffSide, FilePath, PullRequestRef, ReviewEvent

# =============================================================================
# VCS
# =============================================================================


class VcsClientPort(Protocol):
    """The origin system hosting the pull request."""

    def get_pull_request(self, ref: PullRequestRef) -> RemotePullRequest: ...

    def get_diff_and_files(
        self, ref: PullRequestRef
    ) -> tuple[str, list[FileChange]]: ...

    def create_review(
        self,
        ref: PullRequestRef,
        event: ReviewEvent,
        body: str,
        commit_sha: str,
    ) -> str: ...

    def create_issue_comment(self, ref: PullRequestRef, body: str) -> str: ...

    def create_review_comment(
        self,
        ref: PullRequestRef,
        body: str,
        commit_sha: str,
        path: str,
        line: int,
        side: DiffSide | None = None,
        start_line: int | None = None,
        start_side: DiffSide | None = None,
    ) -> str: ...

    def get_default_branch(self, owner: str, repo: str) -> str: ...

    def get_tree(self, owner: str, repo: str, ref: str) -> list[TreeEntry]: ...

    def get_file_content(
        self, owner: str, repo: str, path: FilePath, ref: str
    ) -> str | None: ...


# =============================================================================
# AI
# =============================================================================


class CompletionPort(Protocol):
    def complete(self, system_prompt: str, prompt: str) -> str: ...


class ChatStreamPort(Protocol):
    def stream(
        self,
        system_prompt: str,
        history: list[ChatTurn],
        prompt: str,
    ) -> AsyncIterator[str]: ...
