# src/rag/context_assembler.py — v3
"""Context assembler — build a bounded, annotated context block from ranked candidates.

Candidates arrive ranked by similarity (highest first). They are added
greedily until the character budget is spent, so the lowest-ranked
candidates are the ones truncated or dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from insurag.core.models import RetrievalCandidate

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 4000
# Below this many characters a truncated excerpt is not worth including.
MIN_EXCERPT_CHARS = 100


@dataclass
class AssembledContext:
    """Context block plus the candidates that made it in."""

    text: str = ""
    included: list[RetrievalCandidate] = field(default_factory=list)
    truncated_ids: list[str] = field(default_factory=list)
    dropped_ids: list[str] = field(default_factory=list)

    @property
    def total_chars(self) -> int:
        return len(self.text)


def format_header(rank: int, candidate: RetrievalCandidate) -> str:
    return (
        f"[{rank}] category: {candidate.category or 'unknown'} | "
        f"insurer: {candidate.insurer_id or 'unknown'} | "
        f"similarity: {candidate.similarity:.2f}"
    )


class ContextAssembler:
    """Assemble an annotated context block under a character budget.

    Args:
        max_chars: Maximum total characters of the assembled block.
    """

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        self._max_chars = max_chars

    def assemble(self, candidates: list[RetrievalCandidate]) -> AssembledContext:
        budget = self._max_chars
        parts: list[str] = []
        ctx = AssembledContext()
        used = 0

        for rank, candidate in enumerate(candidates, start=1):
            header = format_header(rank, candidate)
            separator = 2 if parts else 0
            block = f"{header}\n{candidate.text}"
            if used + separator + len(block) <= budget:
                parts.append(block)
                ctx.included.append(candidate)
                used += separator + len(block)
                continue

            remaining = budget - used - separator - len(header) - 1 - 3
            if remaining >= MIN_EXCERPT_CHARS:
                parts.append(f"{header}\n{candidate.text[:remaining]}...")
                ctx.included.append(candidate)
                ctx.truncated_ids.append(candidate.fragment_id)
                used = budget
            ctx.dropped_ids.extend(
                c.fragment_id for c in candidates[rank - 1:]
                if c.fragment_id not in ctx.truncated_ids
            )
            break

        ctx.text = "\n\n".join(parts)
        logger.info(
            "Context assembled: %d/%d candidates, %d chars (budget=%d)",
            len(ctx.included), len(candidates), ctx.total_chars, budget,
        )
        return ctx
