# src/llm/models.py — v3
"""LLM-specific types: Message, LLMResponse.

The generation stage sends one user message (fragments plus question) and
the answering instructions as the system prompt.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class Message(BaseModel):
    """Single message in a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


class LLMResponse(BaseModel):
    """Normalized response from any LLM provider.

    Token counts are 0 when the provider does not report usage.
    """

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str
    provider: str
    latency_ms: int = 0
    raw_response: Any = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
