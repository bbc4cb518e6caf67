"""Fixtures for LLM domain tests."""

from __future__ import annotations

import pytest

from stepwise.domain.llm.value_objects import ModelConfig


@pytest.fixture
def anthropic_config() -> ModelConfig:
    return ModelConfig(model="anthropic:claude-sonnet-4-5", max_tokens=4_096)
