"""Value objects for the LLM bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from stepwise.shared.types import ChatRole

# =============================================================================
# VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True)
class ModelConfig:
    """Configuration for an LLM model via pydantic-ai.

    The ``model`` field uses pydantic-ai model strings, e.g.
    ``"anthropic:claude-sonnet-4-5"`` or ``"openai:gpt-4o"``.
    """

    model: str
    max_tokens: int
    temperature: float = 0.0

    def __post_init__(self) -> None:
        if self.max_tokens <= 0:
            msg = f"max_tokens must be positive, got {self.max_tokens}"
            raise ValueError(msg)


@dataclass(frozen=True)
class ChatTurn:
    """One prior message replayed to the model as conversation history."""

    role: ChatRole
    content: str
