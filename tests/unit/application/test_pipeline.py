"""Tests for the background review pipeline."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from stepwise.application.pipeline import ReviewPipeline
from stepwise.application.prompts import (
    CODEBASE_SYSTEM_PROMPT,
    GUIDANCE_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
)
from stepwise.application.sessions import ReviewSessions
from stepwise.domain.advisory.value_objects import (
    CodebaseContext,
    ContextItem,
    PullRequestSummary,
    StepGuidance,
)
from stepwise.domain.jobs.value_objects import Job, JobStatus, JobType
from stepwise.domain.review.entities import SessionContext
from stepwise.domain.review.value_objects import (
    FileChange,
    RemotePullRequest,
    TreeEntry,
)
from stepwise.infrastructure.persistence.job_queue import SqlJobQueue
from stepwise.infrastructure.persistence.store import SqlReviewStore
from stepwise.shared.exceptions import (
    ExternalServiceError,
    NotFoundError,
    StaleGenerationError,
    ValidationError,
)
from stepwise.shared.types import ChatRole, FilePath, NoteSeverity, TargetType

NEW_HEAD = "b" * 40

# =============================================================================
# Fixtures
# =============================================================================


def _files(*paths: str) -> list[FileChange]:
    return [
        FileChange(path=FilePath(p), status="modified", additions=1, patch=f"+{p}")
        for p in paths
    ]


@pytest.fixture
def mock_completion() -> MagicMock:
    return MagicMock()


@pytest.fixture
def pipeline(
    store: SqlReviewStore,
    mock_vcs: MagicMock,
    mock_completion: MagicMock,
    queue: SqlJobQueue,
) -> ReviewPipeline:
    return ReviewPipeline(
        store=store, vcs=mock_vcs, completion=mock_completion, queue=queue
    )


def _jobs_of(queue: SqlJobQueue, job_type: JobType) -> list[Job]:
    return [j for j in queue.list_jobs() if j.job_type == job_type]


# =============================================================================
# ingest
# =============================================================================


def test_ingest_queues_step_generation_with_diff_and_files(
    pipeline: ReviewPipeline,
    queue: SqlJobQueue,
    mock_vcs: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    mock_vcs.get_diff_and_files.return_value = ("diff --git", _files("a.py"))

    pipeline.ingest(ctx.session.id)

    (job,) = _jobs_of(queue, JobType.GENERATE_STEPS)
    assert job.payload["session_id"] == ctx.session.id
    assert job.payload["diff"] == "diff --git"
    assert job.payload["head_sha"] == "a" * 40
    assert job.payload["generation"] == 0
    assert job.payload["files"] == [f.to_dict() for f in _files("a.py")]


def test_ingest_of_missing_session_is_not_found(pipeline: ReviewPipeline) -> None:
    with pytest.raises(NotFoundError):
        pipeline.ingest("missing")


def test_ingest_propagates_github_failures(
    pipeline: ReviewPipeline,
    mock_vcs: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    mock_vcs.get_diff_and_files.side_effect = ExternalServiceError("GitHub", "502")

    with pytest.raises(ExternalServiceError):
        pipeline.ingest(ctx.session.id)


# =============================================================================
# generate_steps
# =============================================================================


def test_regeneration_is_idempotent_and_leaves_no_orphans(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    first = pipeline.generate_steps(ctx.session.id, "diff", _files("a.py", "b.py", "c.py"))
    for step_id in first:
        store.save_context_pack(step_id, [ContextItem("note", "", "x")])
        store.add_note(step_id, "alice", NoteSeverity.QUESTION, "why?")
        store.add_draft(step_id, "alice", TargetType.CONVERSATION, "hm")
        store.add_chat_message(step_id, "alice", ChatRole.USER, "explain")

    second = pipeline.generate_steps(ctx.session.id, "diff", _files("a.py", "b.py", "c.py"))

    steps = store.list_steps(ctx.session.id)
    assert len(steps) == 3
    assert [s.id for s in steps] == second
    assert set(first).isdisjoint(second)
    assert store.list_drafts(ctx.session.id) == []
    for step_id in first:
        assert store.get_step(step_id) is None
        assert store.get_context_pack(step_id) is None
        assert store.list_notes(step_id) == []
        assert store.list_chat_messages(step_id) == []


def test_generate_steps_fans_out_guidance_and_context_packs(
    pipeline: ReviewPipeline,
    queue: SqlJobQueue,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()

    step_ids = pipeline.generate_steps(ctx.session.id, "diff", _files("a.py", "b.py"))

    assert len(_jobs_of(queue, JobType.GENERATE_GUIDANCE)) == 1
    packs = _jobs_of(queue, JobType.BUILD_CONTEXT_PACK)
    assert sorted(j.payload["step_id"] for j in packs) == sorted(step_ids)


def test_generate_steps_records_the_ingested_head(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()

    pipeline.generate_steps(ctx.session.id, "diff", _files("a.py"), head_sha=NEW_HEAD)

    session = store.get_session(ctx.session.id)
    assert session is not None
    assert session.head_sha == NEW_HEAD


def test_ingesting_the_pushed_head_clears_the_stale_flag(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    queue: SqlJobQueue,
    mock_vcs: MagicMock,
    make_remote_pr: Callable[..., RemotePullRequest],
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    sessions = ReviewSessions(store=store, vcs=mock_vcs, queue=queue)
    assert sessions.mark_stale_from_push("acme", "widgets", 42, NEW_HEAD) == [
        ctx.session.id
    ]
    mock_vcs.get_pull_request.return_value = make_remote_pr(head_sha=NEW_HEAD)
    mock_vcs.get_diff_and_files.return_value = ("diff", _files("a.py"))

    pipeline.ingest(ctx.session.id)
    (generate,) = _jobs_of(queue, JobType.GENERATE_STEPS)
    pipeline.handle(generate)

    session = store.get_session(ctx.session.id)
    assert session is not None
    assert session.head_sha == NEW_HEAD
    assert not session.is_stale
    result = sessions.refresh(ctx.session.id, "alice")
    assert not result.refreshed
    assert sessions.check_staleness(ctx.session.id) is False


def test_superseded_generation_is_rejected_without_touching_steps(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    pipeline.generate_steps(ctx.session.id, "diff", _files("a.py"))
    store.move_session(ctx.session.id, ctx.pull_request.id, ctx.session.head_sha)

    with pytest.raises(StaleGenerationError):
        pipeline.generate_steps(
            ctx.session.id, "diff", _files("x.py", "y.py"), generation=0
        )

    assert store.count_steps(ctx.session.id) == 1


def test_generate_steps_for_missing_session_is_not_found(
    pipeline: ReviewPipeline,
) -> None:
    with pytest.raises(NotFoundError):
        pipeline.generate_steps("missing", "diff", _files("a.py"))


# =============================================================================
# generate_guidance
# =============================================================================


def test_guidance_failure_for_one_step_does_not_stop_the_rest(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_completion: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    step_ids = pipeline.generate_steps(ctx.session.id, "diff", _files("a.py", "b.py"))
    guidance_calls = iter(
        [ExternalServiceError("LLM", "timeout"), '{"summary": "Check b"}']
    )

    def _complete(system_prompt: str, prompt: str) -> str:
        if system_prompt == SUMMARY_SYSTEM_PROMPT:
            return '{"overview": "Adds a cache", "key_changes": ["cache"]}'
        assert system_prompt == GUIDANCE_SYSTEM_PROMPT
        outcome = next(guidance_calls)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    mock_completion.complete.side_effect = _complete

    pipeline.generate_guidance(ctx.session.id)

    session = store.get_session(ctx.session.id)
    assert session is not None
    assert session.summary == PullRequestSummary(
        overview="Adds a cache", key_changes=["cache"]
    )
    first, second = (store.get_step(i) for i in step_ids)
    assert first is not None and first.guidance is None
    assert second is not None and second.guidance == StepGuidance(summary="Check b")


def test_summary_failure_is_best_effort(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_completion: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    mock_completion.complete.side_effect = ExternalServiceError("LLM", "down")

    pipeline.generate_guidance(ctx.session.id)

    session = store.get_session(ctx.session.id)
    assert session is not None
    assert session.summary is None


# =============================================================================
# build_context_pack
# =============================================================================


def test_context_pack_stores_decoded_items(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_completion: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    (step_id,) = pipeline.generate_steps(make_session().session.id, "d", _files("a.py"))
    mock_completion.complete.return_value = (
        '{"items": [{"type": "caller", "path": "api.py", "snippet": "a()"}]}'
    )

    pipeline.build_context_pack(step_id)

    pack = store.get_context_pack(step_id)
    assert pack is not None
    assert pack.items == [ContextItem(type="caller", path="api.py", snippet="a()")]


def test_context_pack_failure_stores_an_empty_pack(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_completion: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    (step_id,) = pipeline.generate_steps(make_session().session.id, "d", _files("a.py"))
    mock_completion.complete.side_effect = ExternalServiceError("LLM", "down")

    pipeline.build_context_pack(step_id)

    pack = store.get_context_pack(step_id)
    assert pack is not None
    assert pack.items == []


def test_context_pack_for_deleted_step_is_skipped(
    pipeline: ReviewPipeline, mock_completion: MagicMock
) -> None:
    pipeline.build_context_pack("gone")

    mock_completion.complete.assert_not_called()


# =============================================================================
# gather_repo_context
# =============================================================================


def test_repo_context_uses_shallow_tree_and_truncated_files(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_vcs: MagicMock,
    mock_completion: MagicMock,
) -> None:
    repo = store.add_repository("acme", "widgets", None, "main")
    mock_vcs.get_tree.return_value = [
        TreeEntry("src", is_directory=True),
        TreeEntry("src/pkg"),
        TreeEntry("src/pkg/deep.py"),
    ]
    mock_vcs.get_file_content.side_effect = (
        lambda owner, name, path, ref: "x" * 6000 if path == "README.md" else None
    )
    mock_completion.complete.return_value = '{"description": "Widgets service"}'

    pipeline.gather_repo_context(repo.id)

    system_prompt, prompt = mock_completion.complete.call_args.args
    assert system_prompt == CODEBASE_SYSTEM_PROMPT
    assert "src/pkg" in prompt
    assert "deep.py" not in prompt
    assert "x" * 5000 + "\n... (truncated)" in prompt
    stored = store.get_repository(repo.id)
    assert stored is not None
    assert stored.codebase_context == CodebaseContext(description="Widgets service")


def test_repo_context_is_gathered_once(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_vcs: MagicMock,
) -> None:
    repo = store.add_repository("acme", "widgets", None, "main")
    store.set_codebase_context(repo.id, CodebaseContext(description="known"))

    pipeline.gather_repo_context(repo.id)

    mock_vcs.get_tree.assert_not_called()


def test_repo_context_skips_when_nothing_was_gathered(
    pipeline: ReviewPipeline,
    store: SqlReviewStore,
    mock_vcs: MagicMock,
    mock_completion: MagicMock,
) -> None:
    repo = store.add_repository("acme", "widgets", None, "main")
    mock_vcs.get_tree.side_effect = ExternalServiceError("GitHub", "404", 404)
    mock_vcs.get_file_content.return_value = None

    pipeline.gather_repo_context(repo.id)

    mock_completion.complete.assert_not_called()


# =============================================================================
# handle
# =============================================================================


def test_handle_dispatches_by_job_type(
    pipeline: ReviewPipeline,
    queue: SqlJobQueue,
    mock_vcs: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    mock_vcs.get_diff_and_files.return_value = ("diff", _files("a.py"))

    pipeline.handle(Job(id="j-1", job_type="ingest", payload={"session_id": ctx.session.id}))
    (generate,) = _jobs_of(queue, JobType.GENERATE_STEPS)
    pipeline.handle(generate)

    assert len(_jobs_of(queue, JobType.BUILD_CONTEXT_PACK)) == 1
    assert all(j.status == JobStatus.PENDING for j in queue.list_jobs())


def test_handle_drops_unknown_job_types(
    pipeline: ReviewPipeline, mock_vcs: MagicMock
) -> None:
    pipeline.handle(Job(id="j-1", job_type="reindex", payload={}))

    mock_vcs.assert_not_called()


def test_handle_rejects_payload_without_required_keys(
    pipeline: ReviewPipeline,
) -> None:
    with pytest.raises(ValidationError, match="missing 'session_id'"):
        pipeline.handle(Job(id="j-1", job_type="ingest", payload={}))


def test_handle_rejects_empty_required_id(pipeline: ReviewPipeline) -> None:
    with pytest.raises(ValidationError, match="missing 'step_id'"):
        pipeline.handle(
            Job(id="j-1", job_type="build_context_pack", payload={"step_id": ""})
        )


def test_handle_lets_key_errors_inside_handlers_propagate(
    pipeline: ReviewPipeline,
    mock_vcs: MagicMock,
    make_session: Callable[..., SessionContext],
) -> None:
    ctx = make_session()
    mock_vcs.get_diff_and_files.side_effect = KeyError("sha")

    with pytest.raises(KeyError, match="sha"):
        pipeline.handle(
            Job(id="j-1", job_type="ingest", payload={"session_id": ctx.session.id})
        )
