"""Streaming chat through pydantic-ai."""

from __future__ import annotations

import logging

from collections.abc import AsyncIterator
from dataclasses import dataclass

from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)

from stepwise.domain.llm.value_objects import ChatTurn, ModelConfig
from stepwise.infrastructure.constants import LLM_PROVIDER_NAME
from stepwise.infrastructure.llm.factory import create_text_agent
from stepwise.shared.exceptions import ExternalServiceError
from stepwise.shared.types import ChatRole

logger = logging.getLogger(__name__)


def to_model_messages(system_prompt: str, history: list[ChatTurn]) -> list[ModelMessage]:
    """Convert stored turns into pydantic-ai message history.

    pydantic-ai only injects the agent's system prompt when the history is
    empty, so it is carried on the first request here.
    """
    messages: list[ModelMessage] = []
    system_pending = True
    for turn in history:
        if turn.role == ChatRole.USER:
            parts: list[ModelRequestPart] = [UserPromptPart(content=turn.content)]
            if system_pending:
                parts.insert(0, SystemPromptPart(content=system_prompt))
                system_pending = False
            messages.append(ModelRequest(parts=parts))
            continue
        if system_pending:
            messages.append(ModelRequest(parts=[SystemPromptPart(content=system_prompt)]))
            system_pending = False
        messages.append(ModelResponse(parts=[TextPart(content=turn.content)]))
    return messages


@dataclass
class PydanticAIChatStreamer:
    """Streams text deltas for one chat turn."""

    config: ModelConfig

    async def stream(
        self,
        system_prompt: str,
        history: list[ChatTurn],
        prompt: str,
    ) -> AsyncIterator[str]:
        """Yield the reply to ``prompt`` piece by piece.

        Raises:
            ExternalServiceError: If the model call fails mid-stream.
        """
        agent = create_text_agent(self.config, system_prompt)
        message_history = to_model_messages(system_prompt, history) or None
        try:
            async with agent.run_stream(
                prompt, message_history=message_history
            ) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        yield delta
        except Exception as e:
            raise ExternalServiceError(LLM_PROVIDER_NAME, str(e)) from e
