"""Background pipeline that turns a pull request into guided review steps."""

from __future__ import annotations

import logging

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import cast

from stepwise.application.ports import CompletionPort, VcsClientPort
from stepwise.application.prompts import (
    CODEBASE_SYSTEM_PROMPT,
    CONTEXT_PACK_SYSTEM_PROMPT,
    GUIDANCE_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    codebase_prompt,
    context_pack_prompt,
    guidance_prompt,
    summary_prompt,
)
from stepwise.domain.advisory.decoding import (
    decode_codebase_context,
    decode_context_items,
    decode_guidance,
    decode_summary,
)
from stepwise.domain.advisory.value_objects import ContextItem
from stepwise.domain.jobs.repositories import JobQueuePort
from stepwise.domain.jobs.value_objects import Job, JobType
from stepwise.domain.review.repositories import ReviewStore
from stepwise.domain.review.services import PerFileStepPartitioner, StepPartitioner
from stepwise.domain.review.value_objects import FileChange, TreeEntry
from stepwise.shared.constants import (
    KEY_REPOSITORY_FILES,
    REPO_CONTEXT_MAX_FILE_CHARS,
    REPO_CONTEXT_TREE_DEPTH,
)
from stepwise.shared.exceptions import (
    ExternalServiceError,
    NotFoundError,
    StaleGenerationError,
    ValidationError,
)
from stepwise.shared.types import FilePath

logger = logging.getLogger(__name__)

_TRUNCATION_MARKER = "\n... (truncated)"

# =============================================================================
# PAYLOAD HELPERS
# =============================================================================


def _required(payload: dict[str, object], key: str) -> str:
    """Read a mandatory id from a job payload.

    Raises:
        ValidationError: If the key is absent or empty.
    """
    raw = payload.get(key)
    if raw is None or raw == "":
        msg = f"Job payload is missing {key!r}"
        raise ValidationError(msg)
    return str(raw)


def _opt_int(raw: object) -> int | None:
    return raw if isinstance(raw, int) and not isinstance(raw, bool) else None


def _opt_str(raw: object) -> str | None:
    return raw if isinstance(raw, str) and raw else None


def _files_from_payload(raw: object) -> list[FileChange]:
    if not isinstance(raw, list):
        return []
    return [
        FileChange.from_dict(cast(dict[str, object], f))
        for f in cast(list[object], raw)
        if isinstance(f, dict)
    ]


def _truncate(content: str) -> str:
    if len(content) > REPO_CONTEXT_MAX_FILE_CHARS:
        return content[:REPO_CONTEXT_MAX_FILE_CHARS] + _TRUNCATION_MARKER
    return content


# =============================================================================
# PIPELINE
# =============================================================================


@dataclass
class ReviewPipeline:
    """Job handlers for the review pipeline.

    ingest -> generate_steps -> (generate_guidance, build_context_pack * N)

    ``ingest`` and ``generate_steps`` propagate failures so the queue can
    retry them. Guidance, context packs and repository context are
    best-effort: AI failures are logged and never escalate.
    """

    store: ReviewStore
    vcs: VcsClientPort
    completion: CompletionPort
    queue: JobQueuePort
    partitioner: StepPartitioner = field(default_factory=PerFileStepPartitioner)

    def handle(self, job: Job) -> None:
        """Route a claimed job to its handler. Unknown types are dropped."""
        handlers: dict[str, Callable[[dict[str, object]], None]] = {
            JobType.INGEST: self._handle_ingest,
            JobType.GENERATE_STEPS: self._handle_generate_steps,
            JobType.GENERATE_GUIDANCE: self._handle_generate_guidance,
            JobType.BUILD_CONTEXT_PACK: self._handle_build_context_pack,
            JobType.GATHER_REPO_CONTEXT: self._handle_gather_repo_context,
        }
        handler = handlers.get(job.job_type)
        if handler is None:
            logger.warning("Dropping job %s of unknown type %r", job.id, job.job_type)
            return
        logger.info(
            "Running %s job %s (attempt %d)", job.job_type, job.id, job.attempts + 1
        )
        handler(job.payload)

    # =================================================================
    # ingest
    # =================================================================

    def ingest(self, session_id: str, generation: int | None = None) -> str | None:
        """Fetch the PR's current head and diff and queue step generation.

        Raises:
            NotFoundError: If the session no longer exists.
            ExternalServiceError: If GitHub could not be reached.
        """
        ctx = self.store.get_session_context(session_id)
        if ctx is None:
            raise NotFoundError("Session", session_id)

        remote = self.vcs.get_pull_request(ctx.ref)
        diff, files = self.vcs.get_diff_and_files(ctx.ref)
        logger.info(
            "Ingested %s at %s: %d file(s)", ctx.ref, remote.head_sha[:12], len(files)
        )
        return self.queue.enqueue(
            JobType.GENERATE_STEPS,
            {
                "session_id": session_id,
                "diff": diff,
                "files": [f.to_dict() for f in files],
                "head_sha": str(remote.head_sha),
                "generation": (
                    generation if generation is not None else ctx.session.generation
                ),
            },
        )

    # =================================================================
    # generate_steps
    # =================================================================

    def generate_steps(
        self,
        session_id: str,
        diff: str,
        files: list[FileChange],
        head_sha: str | None = None,
        generation: int | None = None,
    ) -> list[str]:
        """Replace the session's steps with a fresh partition of ``files``.

        The delete of every step-scoped row, the delete of the old steps and
        the insert of the new ones happen in one transaction while the
        session row is locked, so a rerun always leaves exactly one set of
        steps behind.

        Returns:
            Ids of the new steps, in order.

        Raises:
            NotFoundError: If the session no longer exists.
            StaleGenerationError: If a newer refresh superseded this job.
        """
        ctx = self.store.get_session_context(session_id)
        if ctx is None:
            raise NotFoundError("Session", session_id)

        definitions = self.partitioner.partition(files, ctx.pull_request)

        with self.store.regeneration(session_id) as uow:
            session = uow.lock_session()
            if session is None:
                raise NotFoundError("Session", session_id)
            if generation is not None and generation < session.generation:
                raise StaleGenerationError(session_id, generation, session.generation)

            old_step_ids = uow.list_step_ids()
            uow.delete_step_scoped(old_step_ids)
            uow.delete_steps()
            steps = uow.insert_steps(definitions)
            if head_sha:
                uow.set_head_sha(head_sha)

        logger.info(
            "Generated %d step(s) for session %s (replaced %d, diff %d chars)",
            len(steps),
            session_id,
            len(old_step_ids),
            len(diff),
        )

        self.queue.enqueue(JobType.GENERATE_GUIDANCE, {"session_id": session_id})
        for step in steps:
            self.queue.enqueue(JobType.BUILD_CONTEXT_PACK, {"step_id": step.id})
        return [step.id for step in steps]

    # =================================================================
    # generate_guidance
    # =================================================================

    def generate_guidance(self, session_id: str) -> None:
        """Generate the PR summary and per-step guidance. Best-effort."""
        ctx = self.store.get_session_context(session_id)
        if ctx is None:
            logger.warning("Session %s not found, skipping guidance", session_id)
            return

        steps = self.store.list_steps(session_id)
        codebase = ctx.repository.codebase_context

        try:
            text = self.completion.complete(
                SUMMARY_SYSTEM_PROMPT,
                summary_prompt(ctx.pull_request, steps, codebase),
            )
            self.store.set_summary(session_id, decode_summary(text))
        except ExternalServiceError as e:
            logger.warning("PR summary failed for session %s: %s", session_id, e)

        generated = 0
        for step in steps:
            try:
                text = self.completion.complete(
                    GUIDANCE_SYSTEM_PROMPT, guidance_prompt(step, codebase)
                )
                self.store.set_guidance(step.id, decode_guidance(text))
                generated += 1
            except (ExternalServiceError, NotFoundError) as e:
                logger.warning("Guidance failed for step %s: %s", step.id, e)

        logger.info(
            "Generated guidance for %d/%d step(s) of session %s",
            generated,
            len(steps),
            session_id,
        )

    # =================================================================
    # build_context_pack
    # =================================================================

    def build_context_pack(self, step_id: str) -> None:
        """Store related context for a step. Best-effort."""
        step = self.store.get_step(step_id)
        if step is None:
            logger.warning("Step %s not found, skipping context pack", step_id)
            return

        items: list[ContextItem] = []
        try:
            text = self.completion.complete(
                CONTEXT_PACK_SYSTEM_PROMPT, context_pack_prompt(step)
            )
            items = decode_context_items(text)
        except ExternalServiceError as e:
            logger.warning("Context pack generation failed for %s: %s", step_id, e)

        self.store.save_context_pack(step_id, items)

    # =================================================================
    # gather_repo_context
    # =================================================================

    def gather_repo_context(self, repository_id: str) -> None:
        """Summarize a repository once, for use in later prompts. Best-effort."""
        repo = self.store.get_repository(repository_id)
        if repo is None:
            logger.warning("Repository %s not found, skipping context", repository_id)
            return
        if repo.codebase_context is not None:
            logger.info("Repository %s already has codebase context", repo.full_name)
            return

        tree: list[TreeEntry] = []
        try:
            tree = [
                e
                for e in self.vcs.get_tree(repo.owner, repo.name, repo.default_branch)
                if e.depth <= REPO_CONTEXT_TREE_DEPTH
            ]
        except ExternalServiceError as e:
            logger.warning("Failed to fetch tree for %s: %s", repo.full_name, e)

        files: dict[str, str] = {}
        for path in KEY_REPOSITORY_FILES:
            try:
                content = self.vcs.get_file_content(
                    repo.owner, repo.name, FilePath(path), repo.default_branch
                )
            except ExternalServiceError as e:
                logger.debug("Skipping %s in %s: %s", path, repo.full_name, e)
                continue
            if content is not None:
                files[path] = _truncate(content)

        if not tree and not files:
            logger.info("Nothing gathered for %s, skipping context", repo.full_name)
            return

        try:
            text = self.completion.complete(
                CODEBASE_SYSTEM_PROMPT,
                codebase_prompt(repo.full_name, repo.default_branch, tree, files),
            )
        except ExternalServiceError as e:
            logger.warning("Codebase summary failed for %s: %s", repo.full_name, e)
            return
        self.store.set_codebase_context(repo.id, decode_codebase_context(text))
        logger.info(
            "Stored codebase context for %s (%d key file(s))",
            repo.full_name,
            len(files),
        )

    # =================================================================
    # Payload adapters
    # =================================================================

    def _handle_ingest(self, payload: dict[str, object]) -> None:
        self.ingest(
            _required(payload, "session_id"), _opt_int(payload.get("generation"))
        )

    def _handle_generate_steps(self, payload: dict[str, object]) -> None:
        self.generate_steps(
            _required(payload, "session_id"),
            str(payload.get("diff", "")),
            _files_from_payload(payload.get("files")),
            head_sha=_opt_str(payload.get("head_sha")),
            generation=_opt_int(payload.get("generation")),
        )

    def _handle_generate_guidance(self, payload: dict[str, object]) -> None:
        self.generate_guidance(_required(payload, "session_id"))

    def _handle_build_context_pack(self, payload: dict[str, object]) -> None:
        self.build_context_pack(_required(payload, "step_id"))

    def _handle_gather_repo_context(self, payload: dict[str, object]) -> None:
        self.gather_repo_context(_required(payload, "repository_id"))
