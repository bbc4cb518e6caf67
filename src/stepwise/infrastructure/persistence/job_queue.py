"""Durable job queue stored in the application database."""

from __future__ import annotations

import logging

from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stepwise.domain.jobs.value_objects import Job, JobStatus, JobType, RetryPolicy
from stepwise.infrastructure.persistence.database import Database
from stepwise.infrastructure.persistence.orm import JobRecord, new_id, utcnow
from stepwise.shared.constants import JOB_LEASE_SECONDS
from stepwise.shared.exceptions import DuplicateRecordError

logger = logging.getLogger(__name__)

_CLAIM_CANDIDATES = 5


def _to_job(r: JobRecord) -> Job:
    return Job(
        id=r.id,
        job_type=r.job_type,
        payload=dict(r.payload or {}),
        attempts=r.attempts,
        status=JobStatus(r.status),
        dedupe_key=r.dedupe_key,
        last_error=r.last_error,
        available_at=r.available_at,
    )


class SqlJobQueue:
    """At-least-once queue with dedupe keys and exponential backoff.

    Several workers may poll the same table: a claim only succeeds for the
    worker whose conditional update flips the row from pending to running.
    A running job holds a lease of ``lease_seconds``; when a worker dies
    mid-job the lease runs out and the next claim counts it as a failed
    attempt, re-queuing it or failing it under the retry policy.
    """

    def __init__(
        self,
        database: Database,
        retry_policy: RetryPolicy | None = None,
        lease_seconds: float = JOB_LEASE_SECONDS,
    ) -> None:
        if lease_seconds <= 0:
            msg = f"lease_seconds must be positive, got {lease_seconds}"
            raise ValueError(msg)
        self.database = database
        self.retry_policy = retry_policy or RetryPolicy()
        self.lease_seconds = lease_seconds

    def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, object],
        dedupe_key: str | None = None,
    ) -> str | None:
        """Queue a job.

        Returns:
            The new job id, or None if a live job already holds ``dedupe_key``.
        """
        job_id = new_id()
        try:
            with self.database.session_scope() as session:
                session.add(
                    JobRecord(
                        id=job_id,
                        job_type=str(job_type),
                        payload=payload,
                        status=str(JobStatus.PENDING),
                        attempts=0,
                        dedupe_key=dedupe_key,
                        active_dedupe_key=dedupe_key,
                        available_at=utcnow(),
                    )
                )
        except DuplicateRecordError:
            logger.info("Job %s already queued under key %s", job_type, dedupe_key)
            return None
        logger.info("Queued %s job %s", job_type, job_id)
        return job_id

    def claim(self) -> Job | None:
        with self.database.session_scope() as session:
            now = utcnow()
            self._recover_expired(session, now)
            stmt = (
                select(JobRecord.id)
                .where(
                    JobRecord.status == str(JobStatus.PENDING),
                    JobRecord.available_at <= now,
                )
                .order_by(JobRecord.available_at, JobRecord.created_at)
                .limit(_CLAIM_CANDIDATES)
            )
            for candidate_id in list(session.scalars(stmt)):
                result = session.execute(
                    update(JobRecord)
                    .where(
                        JobRecord.id == candidate_id,
                        JobRecord.status == str(JobStatus.PENDING),
                    )
                    .values(
                        status=str(JobStatus.RUNNING), claimed_at=now, updated_at=now
                    )
                    .execution_options(synchronize_session=False)
                )
                if getattr(result, "rowcount", 0) == 1:
                    record = session.get(JobRecord, candidate_id)
                    if record is not None:
                        return _to_job(record)
        return None

    def _recover_expired(self, session: Session, now: datetime) -> None:
        """Count every running job whose lease ran out as a failed attempt."""
        cutoff = now - timedelta(seconds=self.lease_seconds)
        stmt = (
            select(
                JobRecord.id,
                JobRecord.job_type,
                JobRecord.attempts,
                JobRecord.claimed_at,
            )
            .where(
                JobRecord.status == str(JobStatus.RUNNING),
                JobRecord.claimed_at <= cutoff,
            )
            .limit(_CLAIM_CANDIDATES)
        )
        for job_id, job_type, attempts, claimed_at in list(session.execute(stmt)):
            attempts += 1
            error = f"Worker lease of {self.lease_seconds:.0f}s expired"
            values: dict[str, object] = {
                "attempts": attempts,
                "last_error": error,
                "claimed_at": None,
                "updated_at": now,
            }
            retry = self.retry_policy.should_retry(attempts)
            if retry:
                delay = self.retry_policy.delay_for(attempts)
                values["status"] = str(JobStatus.PENDING)
                values["available_at"] = now + timedelta(seconds=delay)
            else:
                values["status"] = str(JobStatus.FAILED)
                values["active_dedupe_key"] = None
                values["finished_at"] = now
            result = session.execute(
                update(JobRecord)
                .where(
                    JobRecord.id == job_id,
                    JobRecord.status == str(JobStatus.RUNNING),
                    JobRecord.claimed_at == claimed_at,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if getattr(result, "rowcount", 0) != 1:
                continue
            if retry:
                logger.warning(
                    "Job %s (%s) stalled on attempt %d, re-queued",
                    job_id,
                    job_type,
                    attempts,
                )
            else:
                logger.error(
                    "Job %s (%s) stalled after %d attempt(s), giving up",
                    job_id,
                    job_type,
                    attempts,
                )

    def complete(self, job_id: str) -> None:
        with self.database.session_scope() as session:
            record = session.get(JobRecord, job_id)
            if record is None:
                logger.warning("Cannot complete unknown job %s", job_id)
                return
            record.status = str(JobStatus.DONE)
            record.active_dedupe_key = None
            record.finished_at = utcnow()

    def fail(self, job_id: str, error: str, fatal: bool = False) -> bool:
        """Record a failed attempt.

        Returns:
            True if the job was re-queued for another attempt.
        """
        with self.database.session_scope() as session:
            record = session.get(JobRecord, job_id)
            if record is None:
                logger.warning("Cannot fail unknown job %s", job_id)
                return False
            record.attempts = record.attempts + 1
            record.last_error = error
            if not fatal and self.retry_policy.should_retry(record.attempts):
                delay = self.retry_policy.delay_for(record.attempts)
                record.status = str(JobStatus.PENDING)
                record.claimed_at = None
                record.available_at = utcnow() + timedelta(seconds=delay)
                logger.warning(
                    "Job %s (%s) failed on attempt %d, retrying in %.1fs: %s",
                    job_id,
                    record.job_type,
                    record.attempts,
                    delay,
                    error,
                )
                return True
            record.status = str(JobStatus.FAILED)
            record.active_dedupe_key = None
            record.finished_at = utcnow()
            logger.error(
                "Job %s (%s) failed permanently after %d attempt(s): %s",
                job_id,
                record.job_type,
                record.attempts,
                error,
            )
            return False

    def get_job(self, job_id: str) -> Job | None:
        with self.database.session_scope() as session:
            record = session.get(JobRecord, job_id)
            return _to_job(record) if record is not None else None

    def list_jobs(self, status: JobStatus | None = None) -> list[Job]:
        with self.database.session_scope() as session:
            stmt = select(JobRecord).order_by(JobRecord.created_at)
            if status is not None:
                stmt = stmt.where(JobRecord.status == str(status))
            return [_to_job(r) for r in session.scalars(stmt)]
