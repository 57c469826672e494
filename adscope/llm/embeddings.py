from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import openai

from adscope.config import Settings
from adscope.llm.provider import UpstreamError

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Turns text into a fixed-length vector."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]: ...

    @property
    @abstractmethod
    def dimensions(self) -> int: ...


class OpenAIEmbedder(Embedder):
    def __init__(
        self, api_key: str, model: str = "text-embedding-3-small", dimensions: int = 1536
    ) -> None:
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._model = model
        self._dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=text,
                dimensions=self._dimensions,
            )
        except openai.OpenAIError as e:
            logger.error(f"Embedding request failed: {e}")
            raise UpstreamError(f"Failed to create embedding: {e}") from e
        return list(response.data[0].embedding)

    @property
    def dimensions(self) -> int:
        return self._dimensions


def create_embedder(settings: Settings) -> Embedder:
    return OpenAIEmbedder(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
    )
