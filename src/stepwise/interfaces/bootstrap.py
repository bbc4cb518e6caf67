"""Composition root: wires configuration to concrete adapters and use cases."""

from __future__ import annotations

import logging

from dataclasses import dataclass

from stepwise.application.pipeline import ReviewPipeline
from stepwise.application.sessions import ReviewSessions
from stepwise.application.step_chat import StepChat
from stepwise.application.submit_review import SubmitReview
from stepwise.application.worker import WorkerPool
from stepwise.domain.llm.value_objects import ModelConfig
from stepwise.infrastructure.github.client import GitHubClient
from stepwise.infrastructure.llm.chat import PydanticAIChatStreamer
from stepwise.infrastructure.llm.completion import PydanticAICompletionClient
from stepwise.infrastructure.persistence.database import Database
from stepwise.infrastructure.persistence.job_queue import SqlJobQueue
from stepwise.infrastructure.persistence.store import SqlReviewStore
from stepwise.interfaces.config import AppConfig

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Everything the API routes and the worker pool need."""

    config: AppConfig
    database: Database
    store: SqlReviewStore
    queue: SqlJobQueue
    sessions: ReviewSessions
    submit_review: SubmitReview
    step_chat: StepChat
    pipeline: ReviewPipeline

    def worker_pool(self) -> WorkerPool:
        return WorkerPool(
            queue=self.queue,
            handler=self.pipeline,
            concurrency=self.config.worker_concurrency,
            poll_interval=self.config.poll_interval,
        )


def build_container(config: AppConfig) -> Container:
    """Create the database schema and assemble every service."""
    database = Database(config.database_url)
    database.create_all()

    store = SqlReviewStore(database)
    queue = SqlJobQueue(database, lease_seconds=config.job_lease_seconds)
    vcs = GitHubClient(token=config.github_token)
    completion = PydanticAICompletionClient(
        ModelConfig(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    )
    streamer = PydanticAIChatStreamer(
        ModelConfig(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.chat_temperature,
        )
    )
    logger.info("Using model %s with database %s", config.model, database.engine.url)

    return Container(
        config=config,
        database=database,
        store=store,
        queue=queue,
        sessions=ReviewSessions(store=store, vcs=vcs, queue=queue),
        submit_review=SubmitReview(store=store, vcs=vcs),
        step_chat=StepChat(store=store, streamer=streamer),
        pipeline=ReviewPipeline(
            store=store, vcs=vcs, completion=completion, queue=queue
        ),
    )
