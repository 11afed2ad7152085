# tests/unit/stages/test_unit_embedding.py — v1
"""Tests for stages/embedding.py — truncation and hash fallback."""

from __future__ import annotations

import pytest

from insurag.core.deadline import Deadline
from insurag.core.errors import DeadlineExceeded, FallbackReason, RateLimitExceeded
from insurag.rag.embeddings.hash_embedder import hash_embedding
from insurag.resilience.executor import ProviderExecutor
from insurag.resilience.rate_limiter import SlidingWindowRateLimiter
from insurag.resilience.retry import RetryPolicy
from insurag.stages.embedding import EmbeddingStage, truncate_input

from tests.conftest import DIMENSIONS, KeywordEmbedder, StatusError, keyword_vector


async def _no_sleep(_: float) -> None:
    return None


def _stage(embedder, rate_limiter=None, max_input_chars=8000) -> EmbeddingStage:
    executor = ProviderExecutor(
        rate_limiter=rate_limiter, policy=RetryPolicy(jitter=False), sleep=_no_sleep
    )
    return EmbeddingStage(embedder, executor, dimensions=DIMENSIONS, max_input_chars=max_input_chars)


class TestTruncateInput:
    def test_short_unchanged(self):
        assert truncate_input("abc", 10) == "abc"

    def test_cut_at_boundary(self):
        assert truncate_input("abcdefghij", 4) == "abcd"

    def test_deterministic(self):
        text = "x" * 9000
        assert truncate_input(text, 8000) == truncate_input(text, 8000)


class TestEmbeddingStage:
    @pytest.mark.asyncio
    async def test_success(self):
        outcome = await _stage(KeywordEmbedder()).embed("Krankenversicherung Kosten", Deadline(5))
        assert outcome.status == "success"
        assert outcome.value == keyword_vector("Krankenversicherung Kosten")

    @pytest.mark.asyncio
    async def test_over_length_input_truncated(self):
        embedder = KeywordEmbedder()
        await _stage(embedder, max_input_chars=10).embed("Krankenversicherung", Deadline(5))
        assert embedder.calls == ["Krankenver"]

    @pytest.mark.asyncio
    async def test_disabled_uses_hash_fallback(self):
        outcome = await _stage(None).embed("Kosten", Deadline(5))
        assert outcome.status == "fallback"
        assert outcome.reason is FallbackReason.PROVIDER_DISABLED
        assert outcome.value == hash_embedding("Kosten", DIMENSIONS)

    @pytest.mark.asyncio
    async def test_provider_failure_uses_fallback(self):
        embedder = KeywordEmbedder(error=StatusError(503))
        outcome = await _stage(embedder).embed("Kosten", Deadline(30))
        assert outcome.reason is FallbackReason.PROVIDER_ERROR
        assert len(outcome.value) == DIMENSIONS
        assert len(embedder.calls) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_failure_uses_fallback(self):
        embedder = KeywordEmbedder(error=StatusError(401))
        outcome = await _stage(embedder).embed("Kosten", Deadline(30))
        assert outcome.reason is FallbackReason.PROVIDER_ERROR
        assert len(embedder.calls) == 1

    @pytest.mark.asyncio
    async def test_dimension_mismatch_uses_fallback(self):
        outcome = await _stage(KeywordEmbedder(dimensions=3)).embed("Kosten", Deadline(5))
        assert outcome.reason is FallbackReason.DIMENSION_MISMATCH
        assert len(outcome.value) == DIMENSIONS

    @pytest.mark.asyncio
    async def test_deadline_not_masked(self):
        outcome = await _stage(KeywordEmbedder(delay_s=5)).embed("Kosten", Deadline(0.05))
        assert outcome.status == "failed"
        assert isinstance(outcome.error, DeadlineExceeded)

    @pytest.mark.asyncio
    async def test_rate_limit_not_masked(self, fake_clock):
        limiter = SlidingWindowRateLimiter({"embedding": 1}, policy="fail_fast", clock=fake_clock)
        stage = _stage(KeywordEmbedder(), rate_limiter=limiter)
        assert (await stage.embed("Kosten", Deadline(5))).status == "success"
        outcome = await stage.embed("Kosten", Deadline(5))
        assert outcome.status == "failed"
        assert isinstance(outcome.error, RateLimitExceeded)
