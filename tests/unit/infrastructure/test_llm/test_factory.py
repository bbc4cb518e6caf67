"""Tests for the pydantic-ai Agent factory."""

from __future__ import annotations

from pydantic_ai import Agent

from stepwise.domain.llm.value_objects import ModelConfig
from stepwise.infrastructure.llm.factory import create_text_agent


def _make_config(temperature: float = 0.0) -> ModelConfig:
    return ModelConfig(model="test", max_tokens=1024, temperature=temperature)


def test_create_text_agent_returns_str_agent() -> None:
    agent = create_text_agent(_make_config(), "You are helpful.")

    assert isinstance(agent, Agent)
    assert agent.output_type is str


def test_create_text_agent_sets_model_settings() -> None:
    agent = create_text_agent(_make_config(temperature=0.7), "You are helpful.")

    assert agent.model_settings is not None
    assert agent.model_settings.get("temperature") == 0.7
    assert agent.model_settings.get("max_tokens") == 1024
