"""Tests for the SQL-backed job queue."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update

from stepwise.domain.jobs.value_objects import JobStatus, JobType, RetryPolicy
from stepwise.infrastructure.persistence.database import Database
from stepwise.infrastructure.persistence.job_queue import SqlJobQueue
from stepwise.infrastructure.persistence.orm import JobRecord, utcnow

# =============================================================================
# Enqueue & claim
# =============================================================================


def test_enqueue_then_claim_marks_running(queue: SqlJobQueue) -> None:
    job_id = queue.enqueue(JobType.INGEST, {"session_id": "s-1"})

    job = queue.claim()

    assert job is not None
    assert job.id == job_id
    assert job.job_type == "ingest"
    assert job.payload == {"session_id": "s-1"}
    assert job.status == JobStatus.RUNNING
    assert queue.claim() is None


def test_claim_on_empty_queue_returns_none(queue: SqlJobQueue) -> None:
    assert queue.claim() is None


def test_claim_returns_unknown_job_types(queue: SqlJobQueue) -> None:
    queue.enqueue("from_the_future", {})

    job = queue.claim()

    assert job is not None
    assert job.job_type == "from_the_future"


# =============================================================================
# Dedupe keys
# =============================================================================


def test_live_dedupe_key_makes_enqueue_a_no_op(queue: SqlJobQueue) -> None:
    first = queue.enqueue(JobType.INGEST, {}, dedupe_key="ingest-s-1-abc")
    second = queue.enqueue(JobType.INGEST, {}, dedupe_key="ingest-s-1-abc")

    assert first is not None
    assert second is None
    assert len(queue.list_jobs()) == 1


def test_dedupe_key_is_released_when_job_completes(queue: SqlJobQueue) -> None:
    queue.enqueue(JobType.INGEST, {}, dedupe_key="k")
    job = queue.claim()
    assert job is not None
    queue.complete(job.id)

    assert queue.enqueue(JobType.INGEST, {}, dedupe_key="k") is not None


def test_jobs_without_dedupe_key_never_collide(queue: SqlJobQueue) -> None:
    queue.enqueue(JobType.BUILD_CONTEXT_PACK, {"step_id": "1"})
    queue.enqueue(JobType.BUILD_CONTEXT_PACK, {"step_id": "2"})

    assert len(queue.list_jobs(JobStatus.PENDING)) == 2


# =============================================================================
# Failure & retry
# =============================================================================


def test_failed_attempt_is_requeued_with_backoff(queue: SqlJobQueue) -> None:
    job_id = queue.enqueue(JobType.INGEST, {})
    claimed = queue.claim()
    assert claimed is not None

    before = utcnow()
    requeued = queue.fail(claimed.id, "GitHub error: timeout")

    job = queue.get_job(job_id or "")
    assert requeued
    assert job is not None
    assert job.status == JobStatus.PENDING
    assert job.attempts == 1
    assert job.last_error == "GitHub error: timeout"
    assert job.available_at is not None
    assert job.available_at >= before + timedelta(seconds=1)
    assert queue.claim() is None


def test_job_fails_permanently_after_max_attempts(database: Database) -> None:
    queue = SqlJobQueue(database, RetryPolicy(max_attempts=3, base_seconds=0.0))
    job_id = queue.enqueue(JobType.INGEST, {}, dedupe_key="k")

    outcomes = []
    for _ in range(3):
        claimed = queue.claim()
        assert claimed is not None
        outcomes.append(queue.fail(claimed.id, "boom"))

    job = queue.get_job(job_id or "")
    assert outcomes == [True, True, False]
    assert job is not None
    assert job.status == JobStatus.FAILED
    assert job.attempts == 3
    assert queue.claim() is None
    assert queue.enqueue(JobType.INGEST, {}, dedupe_key="k") is not None


def test_fatal_failure_skips_retries(queue: SqlJobQueue) -> None:
    job_id = queue.enqueue(JobType.GENERATE_STEPS, {})
    claimed = queue.claim()
    assert claimed is not None

    assert not queue.fail(claimed.id, "Session s-1 not found", fatal=True)

    job = queue.get_job(job_id or "")
    assert job is not None
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1


def test_fail_unknown_job_is_ignored(queue: SqlJobQueue) -> None:
    assert not queue.fail("missing", "boom")


# =============================================================================
# Worker leases
# =============================================================================


def _expire_lease(database: Database, job_id: str) -> None:
    with database.session_scope() as session:
        session.execute(
            update(JobRecord)
            .where(JobRecord.id == job_id)
            .values(claimed_at=utcnow() - timedelta(hours=1))
        )


def test_running_job_is_reclaimed_after_lease_expires(database: Database) -> None:
    queue = SqlJobQueue(database, RetryPolicy(max_attempts=3, base_seconds=0.0))
    job_id = queue.enqueue(JobType.INGEST, {"session_id": "s-1"}, dedupe_key="k")
    first = queue.claim()
    assert first is not None

    assert queue.claim() is None
    assert queue.enqueue(JobType.INGEST, {}, dedupe_key="k") is None

    _expire_lease(database, first.id)
    second = queue.claim()

    assert second is not None
    assert second.id == job_id
    assert second.attempts == 1
    assert second.status == JobStatus.RUNNING
    assert second.last_error is not None
    assert "lease" in second.last_error
    assert queue.enqueue(JobType.INGEST, {}, dedupe_key="k") is None

    queue.complete(second.id)

    assert queue.enqueue(JobType.INGEST, {}, dedupe_key="k") is not None


def test_live_lease_is_not_reclaimed(database: Database) -> None:
    queue = SqlJobQueue(database, lease_seconds=3600.0)
    queue.enqueue(JobType.INGEST, {})
    assert queue.claim() is not None

    assert queue.claim() is None
    assert len(queue.list_jobs(JobStatus.RUNNING)) == 1


def test_expired_lease_on_last_attempt_fails_job(database: Database) -> None:
    queue = SqlJobQueue(database, RetryPolicy(max_attempts=1, base_seconds=0.0))
    job_id = queue.enqueue(JobType.GENERATE_STEPS, {}, dedupe_key="k")
    claimed = queue.claim()
    assert claimed is not None

    _expire_lease(database, claimed.id)

    assert queue.claim() is None
    job = queue.get_job(job_id or "")
    assert job is not None
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1
    assert queue.enqueue(JobType.GENERATE_STEPS, {}, dedupe_key="k") is not None


def test_non_positive_lease_is_rejected(database: Database) -> None:
    with pytest.raises(ValueError, match="lease_seconds"):
        SqlJobQueue(database, lease_seconds=0)
