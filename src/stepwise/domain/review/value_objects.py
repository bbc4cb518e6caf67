"""Value objects for the Review bounded context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import cast

from stepwise.shared.types import (
    CommitSHA,
    Complexity,
    FilePath,
    PullRequestState,
)

# =============================================================================
# CHANGE SET
# =============================================================================


@dataclass(frozen=True)
class FileChange:
    """Per-file metadata for one file in a pull request's change set."""

    path: FilePath
    status: str
    additions: int = 0
    deletions: int = 0
    patch: str | None = None

    @property
    def is_added(self) -> bool:
        return self.status == "added"

    @property
    def changed_lines(self) -> int:
        return self.additions + self.deletions

    def to_dict(self) -> dict[str, object]:
        return {
            "path": str(self.path),
            "status": self.status,
            "additions": self.additions,
            "deletions": self.deletions,
            "patch": self.patch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> FileChange:
        additions = data.get("additions", 0)
        deletions = data.get("deletions", 0)
        patch = data.get("patch")
        return cls(
            path=FilePath(str(data.get("path", ""))),
            status=str(data.get("status", "modified")),
            additions=additions if isinstance(additions, int) else 0,
            deletions=deletions if isinstance(deletions, int) else 0,
            patch=patch if isinstance(patch, str) else None,
        )


@dataclass(frozen=True)
class DiffHunk:
    """A slice of the diff shown inside one review step."""

    path: FilePath
    patch: str

    def to_dict(self) -> dict[str, str]:
        return {"path": str(self.path), "patch": self.patch}

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> DiffHunk:
        return cls(
            path=FilePath(str(data.get("path", ""))),
            patch=str(data.get("patch", "")),
        )


def hunks_from_list(raw: object) -> list[DiffHunk]:
    """Read stored diff hunks, skipping entries that are not objects."""
    if not isinstance(raw, list):
        return []
    return [
        DiffHunk.from_dict(cast(dict[str, object], h))
        for h in cast(list[object], raw)
        if isinstance(h, dict)
    ]


# =============================================================================
# STEP PLANNING
# =============================================================================


@dataclass(frozen=True)
class StepDefinition:
    """A step produced by a partitioner, before it is persisted."""

    title: str
    category: str
    complexity: Complexity
    risk_tags: frozenset[str] = field(default_factory=frozenset[str])
    diff_hunks: list[DiffHunk] = field(default_factory=list[DiffHunk])


# =============================================================================
# REMOTE STATE
# =============================================================================


@dataclass(frozen=True)
class RemotePullRequest:
    """Pull request metadata as reported by the origin system."""

    number: int
    title: str
    author_login: str
    state: PullRequestState
    head_sha: CommitSHA
    head_ref: str
    base_sha: CommitSHA
    base_ref: str

    @property
    def is_open(self) -> bool:
        return self.state == PullRequestState.OPEN


@dataclass(frozen=True)
class TreeEntry:
    """One path in a repository's file tree."""

    path: str
    is_directory: bool = False

    @property
    def depth(self) -> int:
        return len(self.path.split("/"))
