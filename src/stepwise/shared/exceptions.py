"""Typed exception hierarchy for Stepwise."""

from __future__ import annotations

# =============================================================================
# BASE
# =============================================================================


class StepwiseError(Exception):
    """Base exception for all Stepwise errors."""


# =============================================================================
# REQUEST
# =============================================================================


class ValidationError(StepwiseError):
    """Caller input was rejected before any external call was made."""


class ConflictError(StepwiseError):
    """The remote pull request moved past the commit a session was built from."""

    def __init__(self, expected_sha: str, actual_sha: str) -> None:
        self.expected_sha = expected_sha
        self.actual_sha = actual_sha
        super().__init__(
            f"Pull request head moved: session is at {expected_sha[:12]}, "
            f"remote is at {actual_sha[:12]}"
        )


class NotFoundError(StepwiseError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class ForbiddenError(StepwiseError):
    """The acting user may not touch the referenced record."""


# =============================================================================
# EXTERNAL SERVICES
# =============================================================================


class ExternalServiceError(StepwiseError):
    """A call to the VCS or AI provider failed."""

    def __init__(
        self,
        service: str,
        reason: str,
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{service} error: {reason}")


class ReviewCommentRejectedError(ExternalServiceError):
    """The origin system refused an inline comment (e.g. line not in diff)."""


# =============================================================================
# PIPELINE
# =============================================================================


class StaleGenerationError(StepwiseError):
    """A step regeneration was superseded by a newer refresh."""

    def __init__(self, session_id: str, expected: int, current: int) -> None:
        self.session_id = session_id
        self.expected = expected
        self.current = current
        super().__init__(
            f"Session {session_id} is at generation {current}, "
            f"job was for generation {expected}"
        )


class PersistenceError(StepwiseError):
    """The persistent store failed to read or write."""


class DuplicateRecordError(PersistenceError):
    """A write collided with a uniqueness constraint."""


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(StepwiseError):
    """Invalid or missing configuration."""
