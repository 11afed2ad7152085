# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a keyword embedder with predictable similarities, a stub LLM, a
small insurance fragment corpus and a service factory.
No external dependencies — all providers are in-process doubles.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from insurag.cache.memory_store import MemoryCacheStore
from insurag.config.settings import Settings, load_settings
from insurag.core.models import RetrievalCandidate
from insurag.llm.base_client import BaseLLMClient
from insurag.llm.models import LLMResponse, Message
from insurag.rag.embeddings.base_embedder import BaseEmbedder
from insurag.rag.vector_store.memory_store import MemoryVectorStore

COLLECTION = "insurance_fragments"

# One dimension per keyword plus a constant bias dimension.
VOCABULARY = ("krankenversicherung", "kosten", "beitrag", "kfz", "haftpflicht", "hausrat")
DIMENSIONS = len(VOCABULARY) + 1

# Similarities against "Krankenversicherung Kosten":
#   h1 0.866, h2 0.816, a1 0.577, p1 0.408
FRAGMENTS: list[dict[str, str]] = [
    {
        "id": "h1",
        "insurer_id": "allianz",
        "category": "health",
        "text": "Die Krankenversicherung Kosten richten sich nach Alter und Beitrag.",
    },
    {
        "id": "h2",
        "insurer_id": "tk",
        "category": "health",
        "text": "Leistungen der gesetzlichen Krankenversicherung im Überblick.",
    },
    {
        "id": "a1",
        "insurer_id": "huk",
        "category": "auto",
        "text": "Kfz Haftpflicht Kosten für Fahranfänger.",
    },
    {
        "id": "p1",
        "insurer_id": "ergo",
        "category": "home",
        "text": "Hausrat Versicherung schützt Ihr Eigentum.",
    },
]


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY] + [1.0]


class KeywordEmbedder(BaseEmbedder):
    """Embeds by keyword counts; optionally slow or failing."""

    def __init__(
        self,
        error: Exception | None = None,
        delay_s: float = 0.0,
        dimensions: int = DIMENSIONS,
    ) -> None:
        self.error = error
        self.delay_s = delay_s
        self._dimensions = dimensions
        self.calls: list[str] = []

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [keyword_vector(t) for t in texts]

    async def embed_query(self, query: str) -> list[float]:
        self.calls.append(query)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        vector = keyword_vector(query)
        return (vector + [0.0] * self._dimensions)[: self._dimensions]

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def provider_name(self) -> str:
        return "keyword"

    @property
    def model_name(self) -> str:
        return "keyword-test"


class StubLLM(BaseLLMClient):
    """Returns a fixed answer; optionally slow or failing."""

    def __init__(
        self,
        answer: str = "Die Kosten hängen vom Alter und Tarif ab [1].",
        error: Exception | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.answer = answer
        self.error = error
        self.delay_s = delay_s
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "system": system})
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return LLMResponse(
            content=self.answer,
            input_tokens=100,
            output_tokens=20,
            model="stub-model",
            provider="stub",
        )

    @property
    def provider_name(self) -> str:
        return "stub"

    @property
    def model_name(self) -> str:
        return "stub-model"


class StatusError(Exception):
    """Provider error carrying an HTTP status code."""

    def __init__(self, status_code: int, message: str = "provider error") -> None:
        super().__init__(message)
        self.status_code = status_code


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def seed_store(
    store: MemoryVectorStore,
    fragments: list[dict[str, str]] = FRAGMENTS,
    collection: str = COLLECTION,
) -> MemoryVectorStore:
    await store.upsert(
        collection,
        [f["id"] for f in fragments],
        [keyword_vector(f["text"]) for f in fragments],
        [f["text"] for f in fragments],
        [{"insurer_id": f["insurer_id"], "category": f["category"]} for f in fragments],
    )
    return store


def make_candidate(
    fragment_id: str = "h1",
    similarity: float = 0.9,
    text: str = "Fragment text.",
    category: str = "health",
    insurer_id: str = "allianz",
) -> RetrievalCandidate:
    return RetrievalCandidate(
        fragment_id=fragment_id,
        insurer_id=insurer_id,
        category=category,
        text=text,
        similarity=similarity,
    )


# === FIXTURES ===


@pytest.fixture
def settings() -> Settings:
    """Settings with providers disabled and instant, jitter-free retries."""
    return load_settings(
        _env_file=None,
        openai_api_key="",
        embedding_provider="none",
        llm_provider="none",
        embedding_dimensions=DIMENSIONS,
        vector_db_type="memory",
        vector_db_collection=COLLECTION,
        retry_base_delay_s=0.0,
        retry_jitter=False,
        log_format="text",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def vector_store() -> MemoryVectorStore:
    return MemoryVectorStore()


@pytest.fixture
def cache_store() -> MemoryCacheStore:
    return MemoryCacheStore(max_entries=100, ttl_s=300)


@pytest.fixture
def make_service(settings, keyword_embedder, stub_llm, vector_store, cache_store):
    """Async factory: ``service = await make_service(**overrides)``.

    Overrides: embedder, llm_client, cache, executor, analytics, settings.
    Pass ``None`` explicitly to disable a provider or the cache.
    """
    from insurag.api.facade import create_service

    defaults: dict[str, Any] = {
        "embedder": keyword_embedder,
        "llm_client": stub_llm,
        "cache": cache_store,
    }

    async def _make(**overrides: Any):
        cfg = overrides.pop("settings", settings)
        await seed_store(vector_store, collection=cfg.vector_db_collection)
        kwargs = {**defaults, **overrides}
        return create_service(cfg, vector_store, **kwargs)

    return _make
