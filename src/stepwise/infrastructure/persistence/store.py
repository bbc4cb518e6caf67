"""SQLAlchemy-backed review store."""

from __future__ import annotations

import logging

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TypeVar, cast

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from stepwise.domain.advisory.decoding import (
    codebase_context_from_dict,
    context_items_from_list,
    guidance_from_dict,
    inline_explanations_from_list,
    summary_from_dict,
)
from stepwise.domain.advisory.value_objects import (
    ContextItem,
    Guidance,
    RepositoryContext,
    SessionSummary,
)
from stepwise.domain.review.entities import (
    ChatMessage,
    ContextPack,
    DraftComment,
    PullRequestSnapshot,
    Repository,
    ReviewerNote,
    ReviewSession,
    ReviewStep,
    SessionContext,
)
from stepwise.domain.review.value_objects import (
    RemotePullRequest,
    StepDefinition,
    hunks_from_list,
)
from stepwise.infrastructure.persistence.database import Database
from stepwise.infrastructure.persistence.orm import (
    ChatMessageRecord,
    ContextPackRecord,
    DraftCommentRecord,
    PullRequestRecord,
    RepositoryRecord,
    ReviewerNoteRecord,
    ReviewSessionRecord,
    ReviewStepRecord,
    new_id,
)
from stepwise.shared.exceptions import NotFoundError
from stepwise.shared.types import (
    ChatRole,
    CommentId,
    CommentStatus,
    CommitSHA,
    Complexity,
    DiffSide,
    NoteSeverity,
    PullRequestState,
    RepositoryId,
    SessionId,
    SessionStatus,
    StepId,
    StepStatus,
    TargetType,
)

logger = logging.getLogger(__name__)

_STEP_SCOPED_RECORDS = (
    ContextPackRecord,
    ChatMessageRecord,
    ReviewerNoteRecord,
    DraftCommentRecord,
)

# =============================================================================
# RECORD MAPPING
# =============================================================================


def _to_repository(r: RepositoryRecord) -> Repository:
    return Repository(
        id=RepositoryId(r.id),
        owner=r.owner,
        name=r.name,
        installation_id=r.installation_id,
        default_branch=r.default_branch,
        codebase_context=codebase_context_from_dict(r.codebase_context),
    )


def _to_pull_request(r: PullRequestRecord) -> PullRequestSnapshot:
    return PullRequestSnapshot(
        id=r.id,
        repository_id=RepositoryId(r.repository_id),
        number=r.number,
        title=r.title,
        author_login=r.author_login,
        base_ref=r.base_ref,
        head_ref=r.head_ref,
        base_sha=CommitSHA(r.base_sha),
        head_sha=CommitSHA(r.head_sha),
        state=PullRequestState(r.state),
    )


def _to_session(r: ReviewSessionRecord) -> ReviewSession:
    return ReviewSession(
        id=SessionId(r.id),
        pull_request_id=r.pull_request_id,
        head_sha=CommitSHA(r.head_sha),
        created_by=r.created_by,
        status=SessionStatus(r.status),
        is_stale=r.is_stale,
        generation=r.generation,
        summary=summary_from_dict(r.summary),
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _to_step(r: ReviewStepRecord) -> ReviewStep:
    return ReviewStep(
        id=StepId(r.id),
        session_id=SessionId(r.session_id),
        order_index=r.order_index,
        title=r.title,
        category=r.category,
        complexity=Complexity(r.complexity),
        risk_tags=frozenset(r.risk_tags or []),
        status=StepStatus(r.status),
        diff_hunks=hunks_from_list(r.diff_hunks),
        guidance=guidance_from_dict(r.guidance),
        inline_explanations=inline_explanations_from_list(
            cast(list[object] | None, r.inline_explanations)
        ),
    )


def _to_note(r: ReviewerNoteRecord) -> ReviewerNote:
    return ReviewerNote(
        id=r.id,
        step_id=StepId(r.step_id),
        author_id=r.author_id,
        severity=NoteSeverity(r.severity),
        body=r.body,
        created_at=r.created_at,
    )


def _to_draft(r: DraftCommentRecord) -> DraftComment:
    return DraftComment(
        id=CommentId(r.id),
        step_id=StepId(r.step_id),
        author_id=r.author_id,
        target_type=TargetType(r.target_type),
        body=r.body,
        status=CommentStatus(r.status),
        path=r.path,
        side=DiffSide(r.side) if r.side else None,
        line=r.line,
        start_line=r.start_line,
        start_side=DiffSide(r.start_side) if r.start_side else None,
        remote_comment_id=r.remote_comment_id,
        error_message=r.error_message,
    )


def _to_chat_message(r: ChatMessageRecord) -> ChatMessage:
    return ChatMessage(
        id=r.id,
        step_id=StepId(r.step_id),
        author_id=r.author_id,
        role=ChatRole(r.role),
        content=r.content,
        created_at=r.created_at,
    )


R = TypeVar("R")


def _require(session: Session, model: type[R], record_id: str, kind: str) -> R:
    record = session.get(model, record_id)
    if record is None:
        raise NotFoundError(kind, record_id)
    return record


# =============================================================================
# STEP REGENERATION
# =============================================================================


class SqlStepRegeneration:
    """Replaces one session's steps inside a single open transaction."""

    def __init__(self, session: Session, session_id: str) -> None:
        self._session = session
        self._session_id = session_id
        self._record: ReviewSessionRecord | None = None

    def lock_session(self) -> ReviewSession | None:
        stmt = (
            select(ReviewSessionRecord)
            .where(ReviewSessionRecord.id == self._session_id)
            .with_for_update()
        )
        self._record = self._session.scalars(stmt).one_or_none()
        return _to_session(self._record) if self._record is not None else None

    def list_step_ids(self) -> list[str]:
        stmt = select(ReviewStepRecord.id).where(
            ReviewStepRecord.session_id == self._session_id
        )
        return list(self._session.scalars(stmt))

    def delete_step_scoped(self, step_ids: list[str]) -> None:
        if not step_ids:
            return
        for model in _STEP_SCOPED_RECORDS:
            self._session.execute(delete(model).where(model.step_id.in_(step_ids)))

    def delete_steps(self) -> None:
        self._session.execute(
            delete(ReviewStepRecord).where(
                ReviewStepRecord.session_id == self._session_id
            )
        )

    def insert_steps(self, definitions: list[StepDefinition]) -> list[ReviewStep]:
        records = [
            ReviewStepRecord(
                id=new_id(),
                session_id=self._session_id,
                order_index=index,
                title=d.title,
                category=d.category,
                complexity=str(d.complexity),
                risk_tags=sorted(d.risk_tags),
                status=str(StepStatus.NOT_STARTED),
                diff_hunks=[h.to_dict() for h in d.diff_hunks],
            )
            for index, d in enumerate(definitions)
        ]
        self._session.add_all(records)
        self._session.flush()
        return [_to_step(r) for r in records]

    def set_head_sha(self, head_sha: str) -> None:
        if self._record is None:
            msg = "lock_session() must be called before set_head_sha()"
            raise RuntimeError(msg)
        if self._record.head_sha != head_sha:
            self._record.head_sha = head_sha
            self._record.is_stale = False


# =============================================================================
# STORE
# =============================================================================


class SqlReviewStore:
    """Review persistence on top of a SQLAlchemy ``Database``.

    Every method runs in its own short transaction except ``regeneration``,
    which hands out a unit of work for the caller to drive.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    # -----------------------------------------------------------------
    # Repositories & pull requests
    # -----------------------------------------------------------------

    def get_repository(self, repository_id: str) -> Repository | None:
        with self.database.session_scope() as session:
            record = session.get(RepositoryRecord, repository_id)
            return _to_repository(record) if record is not None else None

    def find_repository(self, owner: str, name: str) -> Repository | None:
        with self.database.session_scope() as session:
            stmt = select(RepositoryRecord).where(
                RepositoryRecord.owner == owner, RepositoryRecord.name == name
            )
            record = session.scalars(stmt).one_or_none()
            return _to_repository(record) if record is not None else None

    def add_repository(
        self,
        owner: str,
        name: str,
        installation_id: int | None,
        default_branch: str,
    ) -> Repository:
        with self.database.session_scope() as session:
            record = RepositoryRecord(
                id=new_id(),
                owner=owner,
                name=name,
                installation_id=installation_id,
                default_branch=default_branch,
            )
            session.add(record)
            session.flush()
            return _to_repository(record)

    def set_codebase_context(
        self, repository_id: str, context: RepositoryContext
    ) -> None:
        with self.database.session_scope() as session:
            record = _require(session, RepositoryRecord, repository_id, "Repository")
            record.codebase_context = context.to_dict()

    def upsert_pull_request(
        self, repository_id: str, remote: RemotePullRequest
    ) -> PullRequestSnapshot:
        with self.database.session_scope() as session:
            stmt = select(PullRequestRecord).where(
                PullRequestRecord.repository_id == repository_id,
                PullRequestRecord.number == remote.number,
                PullRequestRecord.head_sha == str(remote.head_sha),
            )
            record = session.scalars(stmt).one_or_none()
            if record is None:
                record = PullRequestRecord(
                    id=new_id(),
                    repository_id=repository_id,
                    number=remote.number,
                    head_sha=str(remote.head_sha),
                )
                session.add(record)
            record.title = remote.title
            record.author_login = remote.author_login
            record.base_ref = remote.base_ref
            record.head_ref = remote.head_ref
            record.base_sha = str(remote.base_sha)
            record.state = str(remote.state)
            session.flush()
            return _to_pull_request(record)

    # -----------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------

    def get_session(self, session_id: str) -> ReviewSession | None:
        with self.database.session_scope() as session:
            record = session.get(ReviewSessionRecord, session_id)
            return _to_session(record) if record is not None else None

    def get_session_context(self, session_id: str) -> SessionContext | None:
        with self.database.session_scope() as session:
            stmt = (
                select(ReviewSessionRecord, PullRequestRecord, RepositoryRecord)
                .join(
                    PullRequestRecord,
                    PullRequestRecord.id == ReviewSessionRecord.pull_request_id,
                )
                .join(
                    RepositoryRecord,
                    RepositoryRecord.id == PullRequestRecord.repository_id,
                )
                .where(ReviewSessionRecord.id == session_id)
            )
            row = session.execute(stmt).one_or_none()
            if row is None:
                return None
            session_record, pr_record, repo_record = row
            return SessionContext(
                session=_to_session(session_record),
                pull_request=_to_pull_request(pr_record),
                repository=_to_repository(repo_record),
            )

    def create_session(
        self, pull_request_id: str, head_sha: str, created_by: str
    ) -> ReviewSession:
        with self.database.session_scope() as session:
            record = ReviewSessionRecord(
                id=new_id(),
                pull_request_id=pull_request_id,
                head_sha=head_sha,
                created_by=created_by,
                status=str(SessionStatus.ACTIVE),
                is_stale=False,
                generation=0,
            )
            session.add(record)
            session.flush()
            return _to_session(record)

    def move_session(
        self, session_id: str, pull_request_id: str, head_sha: str
    ) -> ReviewSession:
        with self.database.session_scope() as session:
            record = _require(session, ReviewSessionRecord, session_id, "Session")
            record.pull_request_id = pull_request_id
            record.head_sha = head_sha
            record.is_stale = False
            record.summary = None
            record.generation = record.generation + 1
            session.flush()
            return _to_session(record)

    def mark_stale(self, session_id: str) -> None:
        with self.database.session_scope() as session:
            record = _require(session, ReviewSessionRecord, session_id, "Session")
            record.is_stale = True

    def clear_stale(self, session_id: str) -> None:
        with self.database.session_scope() as session:
            record = _require(session, ReviewSessionRecord, session_id, "Session")
            record.is_stale = False

    def mark_completed(self, session_id: str) -> None:
        with self.database.session_scope() as session:
            record = _require(session, ReviewSessionRecord, session_id, "Session")
            record.status = str(SessionStatus.COMPLETED)

    def set_summary(self, session_id: str, summary: SessionSummary) -> None:
        with self.database.session_scope() as session:
            record = _require(session, ReviewSessionRecord, session_id, "Session")
            record.summary = summary.to_dict()

    def list_active_sessions_for(
        self, owner: str, name: str, number: int
    ) -> list[ReviewSession]:
        with self.database.session_scope() as session:
            stmt = (
                select(ReviewSessionRecord)
                .join(
                    PullRequestRecord,
                    PullRequestRecord.id == ReviewSessionRecord.pull_request_id,
                )
                .join(
                    RepositoryRecord,
                    RepositoryRecord.id == PullRequestRecord.repository_id,
                )
                .where(
                    RepositoryRecord.owner == owner,
                    RepositoryRecord.name == name,
                    PullRequestRecord.number == number,
                    ReviewSessionRecord.status == str(SessionStatus.ACTIVE),
                )
            )
            return [_to_session(r) for r in session.scalars(stmt)]

    def count_steps(self, session_id: str) -> int:
        with self.database.session_scope() as session:
            stmt = (
                select(func.count())
                .select_from(ReviewStepRecord)
                .where(ReviewStepRecord.session_id == session_id)
            )
            return int(session.scalar(stmt) or 0)

    @contextmanager
    def regeneration(self, session_id: str) -> Iterator[SqlStepRegeneration]:
        with self.database.session_scope() as session:
            yield SqlStepRegeneration(session, session_id)

    # -----------------------------------------------------------------
    # Steps
    # -----------------------------------------------------------------

    def get_step(self, step_id: str) -> ReviewStep | None:
        with self.database.session_scope() as session:
            record = session.get(ReviewStepRecord, step_id)
            return _to_step(record) if record is not None else None

    def list_steps(self, session_id: str) -> list[ReviewStep]:
        with self.database.session_scope() as session:
            stmt = (
                select(ReviewStepRecord)
                .where(ReviewStepRecord.session_id == session_id)
                .order_by(ReviewStepRecord.order_index)
            )
            return [_to_step(r) for r in session.scalars(stmt)]

    def set_guidance(self, step_id: str, guidance: Guidance) -> None:
        with self.database.session_scope() as session:
            record = _require(session, ReviewStepRecord, step_id, "Step")
            record.guidance = guidance.to_dict()

    def set_step_status(self, step_id: str, status: StepStatus) -> ReviewStep:
        with self.database.session_scope() as session:
            record = _require(session, ReviewStepRecord, step_id, "Step")
            record.status = str(status)
            session.flush()
            return _to_step(record)

    def get_context_pack(self, step_id: str) -> ContextPack | None:
        with self.database.session_scope() as session:
            stmt = select(ContextPackRecord).where(ContextPackRecord.step_id == step_id)
            record = session.scalars(stmt).one_or_none()
            if record is None:
                return None
            return ContextPack(
                step_id=StepId(record.step_id),
                items=context_items_from_list(cast(list[object], record.items)),
            )

    def save_context_pack(self, step_id: str, items: list[ContextItem]) -> None:
        with self.database.session_scope() as session:
            stmt = select(ContextPackRecord).where(ContextPackRecord.step_id == step_id)
            record = session.scalars(stmt).one_or_none()
            payload = [i.to_dict() for i in items]
            if record is None:
                session.add(
                    ContextPackRecord(id=new_id(), step_id=step_id, items=payload)
                )
            else:
                record.items = payload

    def add_note(
        self,
        step_id: str,
        author_id: str,
        severity: NoteSeverity,
        body: str,
    ) -> ReviewerNote:
        with self.database.session_scope() as session:
            _require(session, ReviewStepRecord, step_id, "Step")
            record = ReviewerNoteRecord(
                id=new_id(),
                step_id=step_id,
                author_id=author_id,
                severity=str(severity),
                body=body,
            )
            session.add(record)
            session.flush()
            return _to_note(record)

    def list_notes(self, step_id: str) -> list[ReviewerNote]:
        with self.database.session_scope() as session:
            stmt = (
                select(ReviewerNoteRecord)
                .where(ReviewerNoteRecord.step_id == step_id)
                .order_by(ReviewerNoteRecord.created_at)
            )
            return [_to_note(r) for r in session.scalars(stmt)]

    # -----------------------------------------------------------------
    # Draft comments
    # -----------------------------------------------------------------

    def add_draft(
        self,
        step_id: str,
        author_id: str,
        target_type: TargetType,
        body: str,
        path: str | None = None,
        side: DiffSide | None = None,
        line: int | None = None,
        start_line: int | None = None,
        start_side: DiffSide | None = None,
    ) -> DraftComment:
        with self.database.session_scope() as session:
            _require(session, ReviewStepRecord, step_id, "Step")
            record = DraftCommentRecord(
                id=new_id(),
                step_id=step_id,
                author_id=author_id,
                status=str(CommentStatus.DRAFT),
                target_type=str(target_type),
                body=body,
                path=path,
                side=str(side) if side is not None else None,
                line=line,
                start_line=start_line,
                start_side=str(start_side) if start_side is not None else None,
            )
            session.add(record)
            session.flush()
            return _to_draft(record)

    def get_draft(self, comment_id: str) -> DraftComment | None:
        with self.database.session_scope() as session:
            record = session.get(DraftCommentRecord, comment_id)
            return _to_draft(record) if record is not None else None

    def list_drafts(
        self, session_id: str, status: CommentStatus | None = None
    ) -> list[DraftComment]:
        with self.database.session_scope() as session:
            stmt = (
                select(DraftCommentRecord)
                .join(ReviewStepRecord, ReviewStepRecord.id == DraftCommentRecord.step_id)
                .where(ReviewStepRecord.session_id == session_id)
                .order_by(ReviewStepRecord.order_index, DraftCommentRecord.created_at)
            )
            if status is not None:
                stmt = stmt.where(DraftCommentRecord.status == str(status))
            return [_to_draft(r) for r in session.scalars(stmt)]

    def mark_publishing(self, comment_id: str) -> None:
        with self.database.session_scope() as session:
            record = _require(session, DraftCommentRecord, comment_id, "Draft comment")
            record.status = str(CommentStatus.PUBLISHING)

    def mark_published(self, comment_id: str, remote_comment_id: str) -> None:
        with self.database.session_scope() as session:
            record = _require(session, DraftCommentRecord, comment_id, "Draft comment")
            record.status = str(CommentStatus.PUBLISHED)
            record.remote_comment_id = remote_comment_id
            record.error_message = None

    def mark_failed(self, comment_id: str, error_message: str) -> None:
        with self.database.session_scope() as session:
            record = _require(session, DraftCommentRecord, comment_id, "Draft comment")
            record.status = str(CommentStatus.FAILED)
            record.error_message = error_message

    # -----------------------------------------------------------------
    # Chat
    # -----------------------------------------------------------------

    def add_chat_message(
        self,
        step_id: str,
        author_id: str,
        role: ChatRole,
        content: str,
    ) -> ChatMessage:
        with self.database.session_scope() as session:
            record = ChatMessageRecord(
                id=new_id(),
                step_id=step_id,
                author_id=author_id,
                role=str(role),
                content=content,
            )
            session.add(record)
            session.flush()
            return _to_chat_message(record)

    def list_chat_messages(
        self, step_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        with self.database.session_scope() as session:
            if limit is None:
                stmt = (
                    select(ChatMessageRecord)
                    .where(ChatMessageRecord.step_id == step_id)
                    .order_by(ChatMessageRecord.created_at)
                )
                return [_to_chat_message(r) for r in session.scalars(stmt)]
            stmt = (
                select(ChatMessageRecord)
                .where(ChatMessageRecord.step_id == step_id)
                .order_by(ChatMessageRecord.created_at.desc())
                .limit(limit)
            )
            recent = [_to_chat_message(r) for r in session.scalars(stmt)]
            return list(reversed(recent))
