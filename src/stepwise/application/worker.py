"""Queue workers: claim, dispatch, then complete or fail."""

from __future__ import annotations

import logging
import threading

from dataclasses import dataclass, field
from typing import Protocol

from stepwise.domain.jobs.repositories import JobQueuePort
from stepwise.domain.jobs.value_objects import Job
from stepwise.shared.constants import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WORKER_CONCURRENCY,
)
from stepwise.shared.exceptions import (
    NotFoundError,
    PersistenceError,
    StaleGenerationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Failures that will not go away by trying again.
_FATAL_ERRORS = (NotFoundError, ValidationError, PersistenceError)


class JobHandler(Protocol):
    def handle(self, job: Job) -> None: ...


# =============================================================================
# WORKER
# =============================================================================


@dataclass
class Worker:
    queue: JobQueuePort
    handler: JobHandler
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    name: str = "worker"

    def run_once(self) -> bool:
        """Process at most one job.

        Returns:
            True if a job was claimed, False if the queue was empty.
        """
        job = self.queue.claim()
        if job is None:
            return False

        try:
            self.handler.handle(job)
        except StaleGenerationError as e:
            logger.info("[%s] Dropping superseded job %s: %s", self.name, job.id, e)
            self.queue.complete(job.id)
        except _FATAL_ERRORS as e:
            logger.error("[%s] Job %s failed permanently: %s", self.name, job.id, e)
            self.queue.fail(job.id, str(e), fatal=True)
        except Exception as e:
            logger.exception("[%s] Job %s raised", self.name, job.id)
            self.queue.fail(job.id, str(e))
        else:
            self.queue.complete(job.id)
        return True

    def run_forever(self, stop: threading.Event) -> None:
        logger.info("[%s] Started", self.name)
        while not stop.is_set():
            try:
                claimed = self.run_once()
            except PersistenceError:
                logger.exception("[%s] Queue unavailable", self.name)
                claimed = False
            if not claimed:
                stop.wait(self.poll_interval)
        logger.info("[%s] Stopped", self.name)


# =============================================================================
# POOL
# =============================================================================


@dataclass
class WorkerPool:
    """N worker threads sharing one durable queue. No cross-job ordering."""

    queue: JobQueuePort
    handler: JobHandler
    concurrency: int = DEFAULT_WORKER_CONCURRENCY
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    _stop: threading.Event = field(default_factory=threading.Event, init=False)
    _threads: list[threading.Thread] = field(
        default_factory=list[threading.Thread], init=False
    )

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            msg = f"concurrency must be at least 1, got {self.concurrency}"
            raise ValueError(msg)

    def start(self) -> None:
        self._stop.clear()
        for index in range(self.concurrency):
            worker = Worker(
                queue=self.queue,
                handler=self.handler,
                poll_interval=self.poll_interval,
                name=f"worker-{index}",
            )
            thread = threading.Thread(
                target=worker.run_forever,
                args=(self._stop,),
                name=worker.name,
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info("Started %d worker(s)", self.concurrency)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()
        logger.info("Worker pool stopped")

    def run(self) -> None:
        """Start the pool and block until interrupted."""
        self.start()
        try:
            while not self._stop.wait(self.poll_interval):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down workers")
        finally:
            self.stop()
