"""Domain-specific types that prevent primitive obsession."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

# =============================================================================
# NEWTYPES
# =============================================================================


class FilePath(str):
    """A path to a source file within a repository."""


class CommitSHA(str):
    """A git commit SHA."""


class SessionId(str):
    """Identifier of a review session."""


class StepId(str):
    """Identifier of a review step."""


class CommentId(str):
    """Identifier of a draft comment."""


class RepositoryId(str):
    """Identifier of a stored repository record."""


# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True)
class PullRequestRef:
    """Addresses one pull request on the origin system."""

    owner: str
    repo: str
    number: int

    def __post_init__(self) -> None:
        if self.number <= 0:
            msg = f"number must be positive, got {self.number}"
            raise ValueError(msg)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.full_name}#{self.number}"


# =============================================================================
# ENUMS
# =============================================================================


class SessionStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class StepStatus(StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    REVIEWED = "reviewed"
    FOLLOW_UP = "follow_up"


class Complexity(StrEnum):
    """Rough size bucket for a review step."""

    S = "S"
    M = "M"
    L = "L"


class CommentStatus(StrEnum):
    """Lifecycle of a draft comment: draft -> publishing -> published | failed."""

    DRAFT = "draft"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"


class TargetType(StrEnum):
    INLINE = "inline"
    CONVERSATION = "conversation"


class DiffSide(StrEnum):
    LEFT = "LEFT"
    RIGHT = "RIGHT"


class ReviewEvent(StrEnum):
    """Review verdicts accepted by the origin system."""

    APPROVE = "APPROVE"
    REQUEST_CHANGES = "REQUEST_CHANGES"
    COMMENT = "COMMENT"


class PullRequestState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class NoteSeverity(StrEnum):
    NIT = "nit"
    SUGGESTION = "suggestion"
    CONCERN = "concern"
    QUESTION = "question"


class ChatRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
