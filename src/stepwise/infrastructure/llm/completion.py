"""Single-shot text completion through pydantic-ai."""

from __future__ import annotations

import logging

from dataclasses import dataclass

from stepwise.domain.llm.value_objects import ModelConfig
from stepwise.infrastructure.constants import LLM_PROVIDER_NAME
from stepwise.infrastructure.llm.factory import create_text_agent
from stepwise.shared.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class PydanticAICompletionClient:
    """Runs one prompt to completion and returns the model's text."""

    config: ModelConfig

    def complete(self, system_prompt: str, prompt: str) -> str:
        """Return the model's reply to ``prompt``.

        Raises:
            ExternalServiceError: If the model call fails for any reason.
        """
        try:
            agent = create_text_agent(self.config, system_prompt)
            result = agent.run_sync(prompt)
        except Exception as e:
            raise ExternalServiceError(LLM_PROVIDER_NAME, str(e)) from e
        logger.debug("Completion returned %d chars", len(result.output))
        return result.output
