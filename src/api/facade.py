# src/api/facade.py — v3
"""Public API facade — single entry point for insurance question answering.

Usage:
    from insurag.api.facade import build_service
    service = await build_service()
    response = await service.query("Krankenversicherung Kosten", ["health"], 5)

The HTTP layer (routing, body parsing) lives outside this package; it maps
``QueryService`` calls and ``QueryPipelineError.to_dict()`` onto responses.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from insurag.api.models import QueryRequest, QueryResponse
from insurag.config.settings import Settings
from insurag.pipeline.orchestrator import QUERY_ENDPOINT, QueryOrchestrator
from insurag.query.normalizer import NormalizerLimits
from insurag.rag.context_assembler import ContextAssembler
from insurag.resilience.executor import ProviderExecutor, build_executor
from insurag.stages.embedding import EmbeddingStage
from insurag.stages.generation import GenerationStage
from insurag.stages.retrieval import RetrievalStage
from insurag.tracking.analytics import AnalyticsRecorder

if TYPE_CHECKING:
    from insurag.cache.base_cache_store import BaseCacheStore
    from insurag.llm.base_client import BaseLLMClient
    from insurag.rag.embeddings.base_embedder import BaseEmbedder
    from insurag.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


class QueryService:
    """Owns the shared components and exposes the query and operator surface.

    Args:
        orchestrator: Per-request pipeline driver.
        analytics: Shared recorder (also fed by the orchestrator).
        embedding_stage: Embedding stage (provider status).
        retrieval_stage: Retrieval stage (vector store status).
        generation_stage: Generation stage (LLM status).
        cache: Shared answer cache, or None when disabled.
        executor: Shared provider executor (rate limiter lives here).
        settings: Settings the service was built from.
    """

    def __init__(
        self,
        orchestrator: QueryOrchestrator,
        analytics: AnalyticsRecorder,
        embedding_stage: EmbeddingStage,
        retrieval_stage: RetrievalStage,
        generation_stage: GenerationStage,
        cache: BaseCacheStore | None = None,
        executor: ProviderExecutor | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._analytics = analytics
        self._embedding = embedding_stage
        self._retrieval = retrieval_stage
        self._generation = generation_stage
        self._cache = cache
        self._executor = executor
        self._settings = settings or Settings()

    @property
    def analytics(self) -> AnalyticsRecorder:
        return self._analytics

    @property
    def cache(self) -> BaseCacheStore | None:
        return self._cache

    async def query(
        self,
        query_text: Any,
        category_filter: Any = None,
        result_count: Any = None,
        similarity_threshold: Any = None,
    ) -> QueryResponse:
        """Answer one question. Raw values are validated by the pipeline."""
        request = QueryRequest(
            query_text=query_text,
            category_filter=category_filter,
            result_count=result_count,
            similarity_threshold=similarity_threshold,
        )
        return await self._orchestrator.run(request)

    async def handle(self, payload: dict[str, Any]) -> QueryResponse:
        """Answer a request body as received (camelCase or snake_case keys)."""
        return await self._orchestrator.run(QueryRequest.model_validate(payload))

    def metrics(self) -> dict[str, Any]:
        """Operator metrics: analytics snapshot, cache and rate-limit state."""
        snapshot = self._analytics.snapshot()
        result: dict[str, Any] = snapshot.model_dump(mode="json")
        if self._cache is not None:
            cache_stats = self._cache.stats()
            result["cache"] = {
                **cache_stats.model_dump(),
                "hit_rate": round(cache_stats.hit_rate, 4),
                "ttl_s": self._cache.ttl_s,
            }
        else:
            result["cache"] = None
        limiter = self._executor.rate_limiter if self._executor else None
        result["rate_limits"] = limiter.snapshot() if limiter else {}
        return result

    def health(self) -> dict[str, Any]:
        """Overall status: ``degraded`` once the error rate reaches the threshold."""
        snapshot = self._analytics.snapshot()
        query_stats = snapshot.endpoints.get(QUERY_ENDPOINT)
        threshold = self._settings.health_error_rate_threshold
        error_rate = query_stats.error_rate if query_stats else 0.0
        status = "degraded" if query_stats and error_rate >= threshold else "healthy"

        cache_hit_rate = self._cache.stats().hit_rate if self._cache else 0.0
        return {
            "status": status,
            "uptime_s": round(snapshot.uptime_s, 3),
            "total_queries": query_stats.count if query_stats else 0,
            "error_rate": round(error_rate, 4),
            "error_rate_threshold": threshold,
            "cache_hit_rate": round(cache_hit_rate, 4),
            "p95_latency_ms": query_stats.latency_ms.p95 if query_stats else 0.0,
        }

    async def rag_status(self) -> dict[str, Any]:
        """Which providers are live and which stages run in fallback mode."""
        embedder = self._embedding.embedder
        client = self._generation.client
        store = self._retrieval.vector_store
        collection = self._settings.vector_db_collection
        try:
            fragments: int | None = await store.count(collection)
        except Exception as e:
            logger.warning("Vector store count failed: %s", e)
            fragments = None

        return {
            "embedding": {
                "provider": embedder.provider_name if embedder else "hash",
                "model": embedder.model_name if embedder else None,
                "dimensions": self._embedding.dimensions,
                "fallback_mode": embedder is None,
            },
            "llm": {
                "provider": client.provider_name if client else "template",
                "model": client.model_name if client else None,
                "fallback_mode": client is None,
            },
            "vector_store": {
                "provider": store.provider_name,
                "collection": collection,
                "fragments": fragments,
            },
            "cache": {"enabled": self._cache is not None},
        }

    def reset_stats(self) -> None:
        """Operator action: zero analytics and cache counters (entries kept)."""
        self._analytics.reset()
        if self._cache is not None:
            self._cache.reset_stats()
        logger.info("Statistics reset by operator")


def create_service(
    settings: Settings,
    vector_store: BaseVectorStore,
    embedder: BaseEmbedder | None = None,
    llm_client: BaseLLMClient | None = None,
    cache: BaseCacheStore | None = None,
    analytics: AnalyticsRecorder | None = None,
    executor: ProviderExecutor | None = None,
) -> QueryService:
    """Wire a QueryService from already-built components."""
    executor = executor or build_executor(settings)
    analytics = analytics or AnalyticsRecorder(ring_size=settings.analytics_ring_size)

    embedding_stage = EmbeddingStage(
        embedder,
        executor,
        dimensions=settings.embedding_dimensions,
        max_input_chars=settings.embedding_max_input_chars,
    )
    retrieval_stage = RetrievalStage(
        vector_store, executor, collection=settings.vector_db_collection
    )
    generation_stage = GenerationStage(
        llm_client,
        executor,
        assembler=ContextAssembler(max_chars=settings.context_max_chars),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    orchestrator = QueryOrchestrator(
        embedding_stage,
        retrieval_stage,
        generation_stage,
        analytics,
        cache=cache,
        limits=NormalizerLimits.from_settings(settings),
        deadline_s=settings.pipeline_deadline_s,
        preview_chars=settings.source_preview_chars,
        cache_fallback_answers=settings.cache_fallback_answers,
        fallback_ttl_s=settings.cache_fallback_ttl_s,
    )
    return QueryService(
        orchestrator,
        analytics,
        embedding_stage,
        retrieval_stage,
        generation_stage,
        cache=cache,
        executor=executor,
        settings=settings,
    )


async def build_service(settings: Settings | None = None) -> QueryService:
    """Build a QueryService from settings (loaded from .env if None).

    The in-process vector store is seeded from VECTOR_DB_SEED_FILE when set;
    fragments without stored vectors are embedded with the configured
    provider, or with the hash embedder when no provider is available.
    """
    from insurag.cache.cache_factory import create_cache_store
    from insurag.llm.client_factory import create_llm_client
    from insurag.rag.embeddings.embedder_factory import create_embedder
    from insurag.rag.embeddings.hash_embedder import HashEmbedder
    from insurag.rag.vector_store.memory_store import MemoryVectorStore
    from insurag.rag.vector_store.vector_store_factory import create_vector_store

    settings = settings or Settings()
    embedder = create_embedder(settings)
    llm_client = create_llm_client(settings)
    vector_store = create_vector_store(settings)
    cache = create_cache_store(settings)

    if isinstance(vector_store, MemoryVectorStore) and settings.vector_db_seed_file:
        seed_embedder = embedder or HashEmbedder(settings.embedding_dimensions)
        await vector_store.load_jsonl(
            settings.vector_db_collection,
            settings.vector_db_seed_file,
            embed=seed_embedder,
        )

    logger.info(
        "Service ready: embedding=%s, llm=%s, vector_store=%s, cache=%s",
        embedder.provider_name if embedder else "hash",
        llm_client.provider_name if llm_client else "template",
        vector_store.provider_name,
        "on" if cache else "off",
    )
    return create_service(
        settings,
        vector_store,
        embedder=embedder,
        llm_client=llm_client,
        cache=cache,
    )
