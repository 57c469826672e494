from __future__ import annotations

from abc import ABC, abstractmethod

from adscope.llm.models import ChatMessage, ChatTurn


class UpstreamError(Exception):
    """The language model or embedding service call failed."""


class LLMProvider(ABC):
    """Abstract interface for tool-calling LLM providers."""

    @abstractmethod
    async def chat_turn(
        self,
        messages: list[ChatMessage],
        tools: list[dict],
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> ChatTurn:
        """Run one model turn. `tools` are JSON-schema function definitions
        ({"name", "description", "parameters"}). Raises UpstreamError."""

    @abstractmethod
    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float: ...

    @property
    @abstractmethod
    def provider_name(self) -> str: ...

    @property
    @abstractmethod
    def model_name(self) -> str: ...
