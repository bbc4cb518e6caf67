"""pydantic-ai Agent factory.

Every Stepwise prompt asks for free text (JSON is decoded tolerantly by the
advisory layer), so agents are always built with ``str`` output.
"""

from __future__ import annotations

from pydantic_ai import Agent

from stepwise.domain.llm.value_objects import ModelConfig

_AGENT_RETRIES = 3


def create_text_agent(config: ModelConfig, system_prompt: str) -> Agent[None, str]:
    """Build a text-output pydantic-ai Agent from a ModelConfig.

    Args:
        config: Model string, token limit and sampling temperature.
        system_prompt: Instructions sent ahead of every run.

    Returns:
        An Agent ready for ``run_sync`` or ``run_stream``.
    """
    return Agent(
        model=config.model,
        output_type=str,
        system_prompt=system_prompt,
        model_settings={
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        },
        retries=_AGENT_RETRIES,
    )
