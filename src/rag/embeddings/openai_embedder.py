# src/rag/embeddings/openai_embedder.py — v2
"""OpenAI embedding adapter.

Uses the openai SDK for embedding generation.
Models: text-embedding-3-small (1536 dims), text-embedding-3-large.
"""

from __future__ import annotations

import logging

from insurag.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings via OpenAI API."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimensions: int = 1536,
        base_url: str | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._dimensions = dimensions
        self._base_url = base_url or None
        self.__client = None

    @property
    def _client(self):
        if self.__client is None:
            try:
                import openai
            except ImportError as e:
                raise ImportError(
                    "openai package required: pip install insurag[openai]"
                ) from e
            self.__client = openai.AsyncOpenAI(
                api_key=self._api_key or "",
                base_url=self._base_url,
                max_retries=0,
            )
        return self.__client

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed document texts via OpenAI API."""
        response = await self._client.embeddings.create(
            input=texts, model=self._model, dimensions=self._dimensions
        )
        return [item.embedding for item in response.data]

    async def embed_query(self, query: str) -> list[float]:
        """Embed a single query (same endpoint, no special instruction)."""
        response = await self._client.embeddings.create(
            input=[query], model=self._model, dimensions=self._dimensions
        )
        return response.data[0].embedding

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
