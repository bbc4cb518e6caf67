"""SQLAlchemy table mappings."""

from __future__ import annotations

import uuid

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; every column stores UTC without an offset."""
    return datetime.now(UTC).replace(tzinfo=None)


# =============================================================================
# BASE
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all Stepwise tables."""


class TimestampedRecord(Base):
    __abstract__ = True

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


# =============================================================================
# REPOSITORIES & PULL REQUESTS
# =============================================================================


class RepositoryRecord(TimestampedRecord):
    __tablename__ = "repositories"
    __table_args__ = (
        Index("idx_repositories_owner_name", "owner", "name", unique=True),
    )

    owner: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    installation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    default_branch: Mapped[str] = mapped_column(String, nullable=False, default="main")
    codebase_context: Mapped[dict[str, object] | None] = mapped_column(
        JSON, nullable=True
    )


class PullRequestRecord(TimestampedRecord):
    __tablename__ = "pull_requests"
    __table_args__ = (
        Index(
            "idx_pull_requests_repo_number_head",
            "repository_id",
            "number",
            "head_sha",
            unique=True,
        ),
    )

    repository_id: Mapped[str] = mapped_column(
        ForeignKey("repositories.id"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    author_login: Mapped[str] = mapped_column(String, nullable=False, default="")
    base_ref: Mapped[str] = mapped_column(String, nullable=False, default="")
    head_ref: Mapped[str] = mapped_column(String, nullable=False, default="")
    base_sha: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    head_sha: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="open")


# =============================================================================
# SESSIONS & STEPS
# =============================================================================


class ReviewSessionRecord(TimestampedRecord):
    __tablename__ = "review_sessions"
    __table_args__ = (Index("idx_review_sessions_pull_request", "pull_request_id"),)

    pull_request_id: Mapped[str] = mapped_column(
        ForeignKey("pull_requests.id"), nullable=False
    )
    head_sha: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)


class ReviewStepRecord(TimestampedRecord):
    __tablename__ = "review_steps"
    __table_args__ = (
        Index("idx_review_steps_session_order", "session_id", "order_index"),
    )

    session_id: Mapped[str] = mapped_column(
        ForeignKey("review_sessions.id"), nullable=False
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    complexity: Mapped[str] = mapped_column(String(1), nullable=False)
    risk_tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="not_started"
    )
    diff_hunks: Mapped[list[dict[str, str]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    guidance: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    inline_explanations: Mapped[list[dict[str, object]] | None] = mapped_column(
        JSON, nullable=True
    )


class ContextPackRecord(TimestampedRecord):
    __tablename__ = "context_packs"
    __table_args__ = (Index("idx_context_packs_step", "step_id", unique=True),)

    step_id: Mapped[str] = mapped_column(
        ForeignKey("review_steps.id"), nullable=False
    )
    items: Mapped[list[dict[str, object]]] = mapped_column(
        JSON, nullable=False, default=list
    )


class ReviewerNoteRecord(TimestampedRecord):
    __tablename__ = "reviewer_notes"
    __table_args__ = (Index("idx_reviewer_notes_step", "step_id"),)

    step_id: Mapped[str] = mapped_column(
        ForeignKey("review_steps.id"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)


class DraftCommentRecord(TimestampedRecord):
    __tablename__ = "draft_comments"
    __table_args__ = (Index("idx_draft_comments_step_status", "step_id", "status"),)

    step_id: Mapped[str] = mapped_column(
        ForeignKey("review_steps.id"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    path: Mapped[str | None] = mapped_column(String, nullable=True)
    side: Mapped[str | None] = mapped_column(String(8), nullable=True)
    line: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_line: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_side: Mapped[str | None] = mapped_column(String(8), nullable=True)
    remote_comment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class ChatMessageRecord(TimestampedRecord):
    __tablename__ = "step_chat_messages"
    __table_args__ = (Index("idx_step_chat_messages_step", "step_id", "created_at"),)

    step_id: Mapped[str] = mapped_column(
        ForeignKey("review_steps.id"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)


# =============================================================================
# JOBS
# =============================================================================


class JobRecord(TimestampedRecord):
    """A durable queue entry.

    ``active_dedupe_key`` mirrors ``dedupe_key`` while the job is pending or
    running and is cleared when it finishes, so the unique index only
    collides with live jobs. ``claimed_at`` starts the lease of a running
    job; a job whose lease runs out is treated as a failed attempt.
    """

    __tablename__ = "jobs"
    __table_args__ = (
        Index("idx_jobs_active_dedupe_key", "active_dedupe_key", unique=True),
        Index("idx_jobs_status_available", "status", "available_at"),
    )

    job_type: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, object]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dedupe_key: Mapped[str | None] = mapped_column(String, nullable=True)
    active_dedupe_key: Mapped[str | None] = mapped_column(String, nullable=True)
    available_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
