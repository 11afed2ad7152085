# tests/unit/rag/test_unit_openai_embedder.py — v2
"""Tests for rag/embeddings/openai_embedder.py — properties, request shape, import error."""

from __future__ import annotations

import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from insurag.rag.embeddings.openai_embedder import OpenAIEmbedder


def _fake_openai(vectors: list[list[float]]):
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=v) for v in vectors])
    )
    module = SimpleNamespace(AsyncOpenAI=MagicMock(return_value=client))
    return module, client


class TestOpenAIEmbedder:
    def test_properties(self):
        e = OpenAIEmbedder(model="text-embedding-3-small", dimensions=1536)
        assert e.provider_name == "openai"
        assert e.model_name == "text-embedding-3-small"
        assert e.dimensions == 1536

    @pytest.mark.asyncio
    async def test_embed_query_passes_dimensions(self, monkeypatch):
        module, client = _fake_openai([[0.1, 0.2]])
        monkeypatch.setitem(sys.modules, "openai", module)
        e = OpenAIEmbedder(api_key="sk-test", dimensions=2)
        assert await e.embed_query("Kosten") == [0.1, 0.2]
        client.embeddings.create.assert_awaited_once_with(
            input=["Kosten"], model="text-embedding-3-small", dimensions=2
        )
        assert module.AsyncOpenAI.call_args.kwargs["max_retries"] == 0

    @pytest.mark.asyncio
    async def test_import_error(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "openai", None)
        e = OpenAIEmbedder()
        with pytest.raises(ImportError, match="openai"):
            await e.embed_query("test")
