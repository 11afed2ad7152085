# src/stages/generation.py — v2
"""Generation stage: question + ranked candidates → answer text.

The answer degrades instead of failing: no candidates, no provider, or a
provider that stays unavailable after retries all produce a deterministic
templated answer. Only deadline and rate-limit exhaustion are reported as
failures.
"""

from __future__ import annotations

import logging

from insurag.core.deadline import Deadline
from insurag.core.errors import DeadlineExceeded, FallbackReason, RateLimitExceeded
from insurag.core.models import RetrievalCandidate
from insurag.core.outcome import StageOutcome
from insurag.llm.base_client import BaseLLMClient
from insurag.llm.models import Message
from insurag.rag.context_assembler import ContextAssembler
from insurag.resilience.executor import ProviderExecutor

logger = logging.getLogger(__name__)

PROVIDER_ID = "generation"

SYSTEM_PROMPT = (
    "You are an expert on German insurance products. Answer the question using "
    "only the numbered context passages. Cite passages as [n] and name the "
    "insurer and category when it matters. If the context does not contain the "
    "answer, say so. Answer in the language of the question."
)

NO_CONTENT_ANSWER = (
    "No matching insurance documents were found for this question. "
    "Try rephrasing it, removing the category filter, or lowering the "
    "similarity threshold."
)

NO_PROVIDER_HEADER = (
    "Answer generation is currently unavailable. "
    "The most relevant passages found for this question are:"
)

FALLBACK_PASSAGES = 3
FALLBACK_PASSAGE_CHARS = 300


def build_prompt(query: str, context: str) -> str:
    return f"Context:\n{context}\n\nQuestion: {query}\n\nAnswer:"


def no_provider_answer(candidates: list[RetrievalCandidate]) -> str:
    """Deterministic answer listing the top passages verbatim."""
    lines = [NO_PROVIDER_HEADER]
    for rank, c in enumerate(candidates[:FALLBACK_PASSAGES], start=1):
        text = c.text
        if len(text) > FALLBACK_PASSAGE_CHARS:
            text = text[:FALLBACK_PASSAGE_CHARS] + "..."
        lines.append(
            f"\n[{rank}] {c.category or 'unknown'} | {c.insurer_id or 'unknown'} "
            f"(similarity {c.similarity:.2f})\n{text}"
        )
    return "\n".join(lines)


class GenerationStage:
    """Answer generation through the provider executor.

    Args:
        client: LLM client, or None when generation is disabled.
        executor: Rate-limited retry wrapper.
        assembler: Context builder with the character budget.
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens.
    """

    def __init__(
        self,
        client: BaseLLMClient | None,
        executor: ProviderExecutor,
        assembler: ContextAssembler | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> None:
        self._client = client
        self._executor = executor
        self._assembler = assembler or ContextAssembler()
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> BaseLLMClient | None:
        return self._client

    async def generate(
        self,
        query: str,
        candidates: list[RetrievalCandidate],
        deadline: Deadline,
    ) -> StageOutcome[str]:
        if not candidates:
            return StageOutcome.fallback(NO_CONTENT_ANSWER, FallbackReason.NO_MATCHING_CONTENT)

        if self._client is None:
            return StageOutcome.fallback(
                no_provider_answer(candidates), FallbackReason.PROVIDER_DISABLED
            )

        context = self._assembler.assemble(candidates)
        messages = [Message(role="user", content=build_prompt(query, context.text))]
        client = self._client
        try:
            response = await self._executor.execute(
                PROVIDER_ID,
                lambda: client.complete(
                    messages,
                    system=SYSTEM_PROMPT,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                ),
                deadline,
            )
        except (DeadlineExceeded, RateLimitExceeded) as e:
            return StageOutcome.failed(e)
        except Exception as e:
            logger.warning("LLM unavailable, using templated answer: %s", e)
            return StageOutcome.fallback(
                no_provider_answer(candidates), FallbackReason.PROVIDER_ERROR
            )

        answer = response.content.strip()
        if not answer:
            logger.warning("LLM returned an empty answer, using templated answer")
            return StageOutcome.fallback(
                no_provider_answer(candidates), FallbackReason.PROVIDER_ERROR
            )

        logger.debug(
            "Answer generated by %s: %d chars, %d tokens, %dms",
            response.model, len(answer), response.total_tokens, response.latency_ms,
        )
        return StageOutcome.success(answer)
