# src/pipeline/orchestrator.py — v3
"""Query orchestrator — drives one request through the pipeline.

    NORMALIZING → CACHE_LOOKUP → (hit) DONE
                               → (miss) EMBEDDING → RETRIEVING → GENERATING
                                        → CACHE_WRITE → DONE
    FAILED from any non-terminal state

One ``Deadline`` covers the whole run; every stage is handed the remaining
budget. Every stage that completes records one ``stage.<name>`` sample
(status 200, outcome ``ok`` / ``fallback`` / ``miss`` / ``hit``) and the run
records one ``query`` sample:

- DONE: status 200, outcome ``ok`` or ``cache_hit``;
- FAILED: error status, outcome ``failed:<stage>``.

A request rejected by the normalizer therefore records a single sample and
invokes no stage. Answers that degraded because a provider was unavailable
are cached with the shorter ``fallback_ttl_s``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable

from insurag.api.models import QueryRequest, QueryResponse, QueryStats
from insurag.cache.models import CacheEntry
from insurag.core.deadline import Deadline
from insurag.core.errors import (
    FallbackReason,
    ProviderError,
    QueryPipelineError,
    status_code_for,
)
from insurag.core.models import NormalizedRequest, RetrievalCandidate, SourceRef
from insurag.core.outcome import StageOutcome
from insurag.logging.context import (
    clear_context,
    set_fingerprint_context,
    set_request_context,
    set_stage_context,
)
from insurag.pipeline.state import PipelineRun, PipelineStage
from insurag.query.normalizer import DEFAULT_LIMITS, NormalizerLimits, normalize
from insurag.resilience.retry import classify_error

if TYPE_CHECKING:
    from insurag.cache.base_cache_store import BaseCacheStore
    from insurag.stages.embedding import EmbeddingStage
    from insurag.stages.generation import GenerationStage
    from insurag.stages.retrieval import RetrievalStage
    from insurag.tracking.analytics import AnalyticsRecorder

logger = logging.getLogger(__name__)

QUERY_ENDPOINT = "query"
CANCELLED_STATUS = 499


class QueryOrchestrator:
    """Sequences normalizer, cache, embedding, retrieval and generation.

    Args:
        embedding_stage: Question → vector.
        retrieval_stage: Vector → ranked candidates.
        generation_stage: Candidates → answer.
        analytics: Shared recorder receiving one sample per transition.
        cache: Answer cache, or None to always run the full pipeline.
        limits: Normalizer bounds.
        deadline_s: Overall per-request budget.
        preview_chars: Length of source previews in the response.
        cache_fallback_answers: Cache answers produced by a provider fallback.
        fallback_ttl_s: Lifetime of such answers (None: the cache TTL).
        clock: Monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        embedding_stage: EmbeddingStage,
        retrieval_stage: RetrievalStage,
        generation_stage: GenerationStage,
        analytics: AnalyticsRecorder,
        cache: BaseCacheStore | None = None,
        limits: NormalizerLimits = DEFAULT_LIMITS,
        deadline_s: float = 30.0,
        preview_chars: int = 200,
        cache_fallback_answers: bool = True,
        fallback_ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._embedding = embedding_stage
        self._retrieval = retrieval_stage
        self._generation = generation_stage
        self._analytics = analytics
        self._cache = cache
        self._limits = limits
        self._deadline_s = deadline_s
        self._preview_chars = preview_chars
        self._cache_fallback_answers = cache_fallback_answers
        self._fallback_ttl_s = fallback_ttl_s
        self._clock = clock

    @property
    def deadline_s(self) -> float:
        return self._deadline_s

    async def run(self, request: QueryRequest) -> QueryResponse:
        """Answer one query.

        Raises:
            RequestValidationError: Input rejected by the normalizer.
            RateLimitExceeded: A provider budget was exhausted.
            DeadlineExceeded: The overall deadline ran out.
            ProviderError: Retrieval failed after retries.
        """
        run = PipelineRun()
        deadline = Deadline(self._deadline_s, clock=self._clock)
        set_request_context(run.request_id)
        set_stage_context(run.stage.value)
        run.stage_started_at = self._clock()

        try:
            return await self._execute(run, request, deadline)
        except asyncio.CancelledError:
            logger.info("Query cancelled during %s", run.stage.value)
            self._fail(run, deadline, CANCELLED_STATUS, "CancelledError")
            raise
        except Exception as e:
            status = status_code_for(e)
            log = logger.warning if status < 500 else logger.error
            log("Query failed during %s: %s", run.stage.value, e)
            self._fail(run, deadline, status, type(e).__name__)
            raise
        finally:
            clear_context()

    async def _execute(
        self, run: PipelineRun, request: QueryRequest, deadline: Deadline
    ) -> QueryResponse:
        normalized = normalize(
            request.query_text,
            request.category_filter,
            request.result_count,
            request.similarity_threshold,
            limits=self._limits,
        )
        set_fingerprint_context(normalized.fingerprint)
        logger.info(
            "Query accepted: filters=%s, k=%d, floor=%.2f",
            normalized.sorted_filters or "any",
            normalized.result_count,
            normalized.similarity_floor,
        )
        self._advance(run, PipelineStage.CACHE_LOOKUP)

        deadline.ensure(PipelineStage.CACHE_LOOKUP.value)
        cached = await self._lookup(normalized.fingerprint)
        if cached is not None:
            return self._finish_from_cache(run, normalized, cached, deadline)
        self._advance(run, PipelineStage.EMBEDDING, outcome="miss")

        deadline.ensure(PipelineStage.EMBEDDING.value)
        embedded = await self._embedding.embed(normalized.query_text, deadline)
        vector = embedded.unwrap()
        if embedded.used_fallback:
            run.fallback_reasons["embedding"] = embedded.reason.value
        self._advance(run, PipelineStage.RETRIEVING, outcome=_outcome_label(embedded))

        deadline.ensure(PipelineStage.RETRIEVING.value)
        retrieved = await self._retrieval.retrieve(
            vector,
            normalized.filters,
            normalized.result_count,
            normalized.similarity_floor,
            deadline,
        )
        if not retrieved.ok:
            raise _as_pipeline_error(retrieved.error)
        candidates: list[RetrievalCandidate] = retrieved.value or []
        self._advance(run, PipelineStage.GENERATING)

        deadline.ensure(PipelineStage.GENERATING.value)
        generated = await self._generation.generate(
            normalized.query_text, candidates, deadline
        )
        answer = generated.unwrap()
        if generated.used_fallback:
            run.fallback_reasons["generation"] = generated.reason.value

        sources = [SourceRef.from_candidate(c, self._preview_chars) for c in candidates]

        generation_label = _outcome_label(generated)
        degraded = _degraded(run.fallback_reasons)
        if self._cache is not None and (self._cache_fallback_answers or not degraded):
            self._advance(run, PipelineStage.CACHE_WRITE, outcome=generation_label)
            await self._store(normalized.fingerprint, answer, sources, run, degraded)
            generation_label = "ok"

        self._finish(run, deadline, outcome="ok", stage_outcome=generation_label)
        stats = self._build_stats(
            run, normalized, cache_hit=False, candidate_count=len(candidates)
        )
        stats.total_ms = round(deadline.elapsed_ms(), 3)
        logger.info(
            "Query done in %.1fms: %d sources, fallbacks=%s",
            stats.total_ms, len(sources), run.fallback_reasons or "none",
        )
        return QueryResponse(answer=answer, sources=sources, stats=stats)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _lookup(self, fingerprint: str) -> CacheEntry | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(fingerprint)
        except Exception as e:
            logger.warning("Cache read failed, treating as miss: %s", e)
            return None

    async def _store(
        self,
        fingerprint: str,
        answer: str,
        sources: list[SourceRef],
        run: PipelineRun,
        degraded: bool,
    ) -> None:
        assert self._cache is not None
        ttl_s = self._cache.ttl_s
        if degraded and self._fallback_ttl_s is not None:
            ttl_s = min(ttl_s, self._fallback_ttl_s)
        entry = CacheEntry.create(
            fingerprint=fingerprint,
            answer=answer,
            sources=sources,
            created_at=self._cache.now(),
            ttl_s=ttl_s,
            stage_timings_ms=dict(run.durations_ms),
            embedding_fallback="embedding" in run.fallback_reasons,
            generation_fallback="generation" in run.fallback_reasons,
            fallback_reasons=dict(run.fallback_reasons),
        )
        try:
            await self._cache.put(fingerprint, entry)
        except Exception as e:
            logger.warning("Cache write failed, answer not cached: %s", e)

    def _finish_from_cache(
        self,
        run: PipelineRun,
        normalized: NormalizedRequest,
        entry: CacheEntry,
        deadline: Deadline,
    ) -> QueryResponse:
        logger.info("Cache hit")
        run.fallback_reasons.update(entry.fallback_reasons)
        self._finish(run, deadline, outcome="cache_hit", stage_outcome="hit")
        stats = self._build_stats(
            run, normalized, cache_hit=True, candidate_count=len(entry.sources)
        )
        stats.embedding_fallback = entry.embedding_fallback
        stats.generation_fallback = entry.generation_fallback
        stats.total_ms = round(deadline.elapsed_ms(), 3)
        return QueryResponse(answer=entry.answer, sources=list(entry.sources), stats=stats)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _close_stage(self, run: PipelineRun) -> float:
        """Record the current stage's duration and return it in ms."""
        now = self._clock()
        elapsed_ms = round((now - run.stage_started_at) * 1000.0, 3)
        run.durations_ms[run.stage.value] = elapsed_ms
        run.stage_started_at = now
        return elapsed_ms

    def _advance(self, run: PipelineRun, target: PipelineStage, outcome: str = "ok") -> None:
        completed = run.stage
        elapsed_ms = self._close_stage(run)
        run.transition(target)
        set_stage_context(target.value)
        self._analytics.record(f"stage.{completed.value}", 200, elapsed_ms, outcome=outcome)
        logger.debug("%s → %s (%.1fms)", completed.value, target.value, elapsed_ms)

    def _finish(
        self, run: PipelineRun, deadline: Deadline, outcome: str, stage_outcome: str
    ) -> None:
        completed = run.stage
        elapsed_ms = self._close_stage(run)
        self._analytics.record(
            f"stage.{completed.value}", 200, elapsed_ms, outcome=stage_outcome
        )
        run.transition(PipelineStage.DONE)
        self._analytics.record(QUERY_ENDPOINT, 200, deadline.elapsed_ms(), outcome=outcome)

    def _fail(
        self, run: PipelineRun, deadline: Deadline, status_code: int, error_type: str
    ) -> None:
        if run.stage.terminal:
            return
        stage = run.stage.value
        run.transition(PipelineStage.FAILED)
        run.error = {"status_code": status_code, "error_type": error_type}
        self._analytics.record(
            QUERY_ENDPOINT,
            status_code,
            deadline.elapsed_ms(),
            outcome=f"failed:{stage}",
            error_type=error_type,
        )

    def _build_stats(
        self,
        run: PipelineRun,
        normalized: NormalizedRequest,
        cache_hit: bool,
        candidate_count: int,
    ) -> QueryStats:
        return QueryStats(
            request_id=run.request_id,
            fingerprint=normalized.fingerprint,
            cache_hit=cache_hit,
            applied_filter=normalized.sorted_filters,
            result_count=normalized.result_count,
            similarity_floor=normalized.similarity_floor,
            candidate_count=candidate_count,
            durations_ms=dict(run.durations_ms),
            embedding_fallback="embedding" in run.fallback_reasons,
            generation_fallback="generation" in run.fallback_reasons,
            fallback_reasons=dict(run.fallback_reasons),
        )


def _as_pipeline_error(error: BaseException | None) -> BaseException:
    """Retrieval errors surface as one top-level pipeline error."""
    if error is None:
        return ProviderError("retrieval", "Retrieval failed")
    if isinstance(error, (QueryPipelineError, TimeoutError)):
        return error
    wrapped = ProviderError(
        "retrieval",
        f"Retrieval failed: {error}",
        attempts=1,
        error_type=classify_error(error),
    )
    wrapped.__cause__ = error
    return wrapped


def _outcome_label(outcome: StageOutcome) -> str:
    return "fallback" if outcome.used_fallback else "ok"


def _degraded(fallback_reasons: dict[str, str]) -> bool:
    """Whether a provider fallback shaped the answer.

    Finding no content above the floor is a valid result, not a degradation.
    """
    return any(
        reason != FallbackReason.NO_MATCHING_CONTENT.value
        for reason in fallback_reasons.values()
    )
