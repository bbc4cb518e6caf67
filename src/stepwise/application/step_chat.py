"""Streaming Q&A about a single review step."""

from __future__ import annotations

import logging

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum

import anyio

from stepwise.application.ports import ChatStreamPort
from stepwise.application.prompts import chat_prompt, chat_system_prompt
from stepwise.domain.llm.value_objects import ChatTurn
from stepwise.domain.review.repositories import ReviewStore
from stepwise.shared.constants import CHAT_HISTORY_LIMIT
from stepwise.shared.exceptions import (
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from stepwise.shared.types import ChatRole

logger = logging.getLogger(__name__)


class ChatEventKind(StrEnum):
    DELTA = "delta"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class ChatEvent:
    kind: ChatEventKind
    text: str = ""


@dataclass(frozen=True)
class PendingReply:
    """A validated question whose user message is already stored."""

    step_id: str
    author_id: str
    system_prompt: str
    prompt: str
    history: list[ChatTurn]


# =============================================================================
# USE CASE
# =============================================================================


@dataclass
class StepChat:
    """Answers reviewer questions about one step, streaming the reply.

    Steps:
    1. Validate the question and load the step (``start``)
    2. Read the prior conversation, then store the new user message
    3. Build the prompt from diff, guidance and context pack
    4. Stream deltas from the model (``reply``)
    5. Store whatever reply text accumulated, even on error or cancellation
    """

    store: ReviewStore
    streamer: ChatStreamPort
    history_limit: int = CHAT_HISTORY_LIMIT

    async def ask(
        self, step_id: str, author_id: str, message: str
    ) -> AsyncIterator[ChatEvent]:
        """Validate, then stream the reply as events.

        Raises:
            ValidationError: If the message is blank.
            NotFoundError: If the step or its session does not exist.
            ForbiddenError: If ``author_id`` does not own the session.
        """
        pending = await anyio.to_thread.run_sync(
            self.start, step_id, author_id, message
        )
        async for event in self.reply(pending):
            yield event

    def start(self, step_id: str, author_id: str, message: str) -> PendingReply:
        """Synchronous half of ``ask``: every rejection happens here."""
        if not message or not message.strip():
            msg = "Message cannot be empty"
            raise ValidationError(msg)

        step = self.store.get_step(step_id)
        if step is None:
            raise NotFoundError("Step", step_id)
        session = self.store.get_session(step.session_id)
        if session is None:
            raise NotFoundError("Session", step.session_id)
        if session.created_by != author_id:
            msg = f"User {author_id} does not own session {session.id}"
            raise ForbiddenError(msg)

        history = [
            ChatTurn(role=m.role, content=m.content)
            for m in self.store.list_chat_messages(step_id, limit=self.history_limit)
        ]
        self.store.add_chat_message(step_id, author_id, ChatRole.USER, message)

        return PendingReply(
            step_id=step_id,
            author_id=author_id,
            system_prompt=chat_system_prompt(step),
            prompt=chat_prompt(
                step, step.guidance, self.store.get_context_pack(step_id), message
            ),
            history=history,
        )

    async def reply(self, pending: PendingReply) -> AsyncIterator[ChatEvent]:
        """Stream the model's answer. Failures end the stream with an error event.

        The partial reply is written from a worker thread under a shielded
        scope, so the write finishes even when the client disconnects.
        """
        chunks: list[str] = []
        try:
            async for delta in self.streamer.stream(
                pending.system_prompt, pending.history, pending.prompt
            ):
                chunks.append(delta)
                yield ChatEvent(ChatEventKind.DELTA, delta)
        except ExternalServiceError as e:
            logger.warning("Chat stream failed for step %s: %s", pending.step_id, e)
            yield ChatEvent(ChatEventKind.ERROR, "Failed to generate a response")
        else:
            yield ChatEvent(ChatEventKind.DONE)
        finally:
            with anyio.CancelScope(shield=True):
                await anyio.to_thread.run_sync(
                    self._save_reply, pending, "".join(chunks)
                )

    def _save_reply(self, pending: PendingReply, text: str) -> None:
        if not text.strip():
            return
        self.store.add_chat_message(
            pending.step_id, pending.author_id, ChatRole.ASSISTANT, text
        )
        logger.debug("Stored %d-char reply for step %s", len(text), pending.step_id)
