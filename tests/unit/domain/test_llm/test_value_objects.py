"""Tests for LLM domain value objects."""

from __future__ import annotations

import dataclasses

import pytest

from stepwise.domain.llm.value_objects import ChatTurn, ModelConfig
from stepwise.shared.types import ChatRole

# =============================================================================
# ModelConfig
# =============================================================================


def test_model_config_temperature_defaults_zero(
    anthropic_config: ModelConfig,
) -> None:
    assert anthropic_config.temperature == 0.0


def test_model_config_is_frozen(anthropic_config: ModelConfig) -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        anthropic_config.model = "openai:gpt-4o"  # type: ignore[misc]


@pytest.mark.parametrize("max_tokens", [0, -1])
def test_model_config_rejects_non_positive_max_tokens(max_tokens: int) -> None:
    with pytest.raises(ValueError, match="max_tokens must be positive"):
        ModelConfig(model="test", max_tokens=max_tokens)


# =============================================================================
# ChatTurn
# =============================================================================


def test_chat_turn_holds_role_and_content() -> None:
    turn = ChatTurn(role=ChatRole.ASSISTANT, content="It caches reads.")

    assert turn.role == "assistant"
    assert turn.content == "It caches reads."
