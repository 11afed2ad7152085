# src/config/settings.py — v3
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for provider credentials, query limits, cache,
rate-limit, retry and logging settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === PROVIDER CREDENTIALS ===
    openai_api_key: str = ""
    openai_base_url: str = ""

    # === EMBEDDINGS ===
    embedding_provider: Literal["none", "openai"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_max_input_chars: int = 8000

    # === LLM ===
    llm_provider: Literal["none", "openai"] = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 2048

    # === Vector database ===
    vector_db_type: Literal["memory", "chromadb"] = "memory"
    vector_db_path: Path | None = None
    vector_db_url: str = ""
    vector_db_collection: str = "insurance_fragments"
    vector_db_seed_file: Path | None = None

    # === Query limits ===
    query_max_chars: int = 1000
    query_default_result_count: int = 5
    query_min_result_count: int = 1
    query_max_result_count: int = 20
    query_default_similarity_floor: float = 0.7

    # === Context assembly ===
    context_max_chars: int = 4000
    source_preview_chars: int = 200

    # === Pipeline ===
    pipeline_deadline_s: float = 30.0

    # === Cache ===
    cache_enabled: bool = True
    cache_max_entries: int = 1000
    cache_ttl_s: float = 300.0
    cache_fallback_answers: bool = True
    cache_fallback_ttl_s: float = 30.0

    # === Rate limiting (per provider, sliding window) ===
    rate_limit_window_s: float = 60.0
    rate_limit_embedding: int = 300
    rate_limit_retrieval: int = 600
    rate_limit_generation: int = 60
    rate_limit_policy: Literal["wait", "fail_fast"] = "wait"
    rate_limit_max_wait_s: float = 2.0

    # === Retry ===
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 0.5
    retry_backoff_factor: float = 2.0
    retry_max_delay_s: float = 5.0
    retry_jitter: bool = True

    # === Analytics / health ===
    analytics_ring_size: int = 1000
    health_error_rate_threshold: float = 0.05

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("query_default_similarity_floor", "health_error_rate_threshold")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:  # noqa: N805
        if not 0.0 <= v <= 1.0:
            raise ValueError("value must be within [0, 1]")
        return v

    @field_validator(
        "embedding_dimensions",
        "embedding_max_input_chars",
        "query_max_chars",
        "context_max_chars",
        "cache_max_entries",
        "rate_limit_embedding",
        "rate_limit_retrieval",
        "rate_limit_generation",
        "analytics_ring_size",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError("value must be > 0")
        return v

    @field_validator(
        "pipeline_deadline_s",
        "cache_ttl_s",
        "cache_fallback_ttl_s",
        "rate_limit_window_s",
    )
    @classmethod
    def validate_positive_float(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("value must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not (
            1
            <= self.query_min_result_count
            <= self.query_default_result_count
            <= self.query_max_result_count
        ):
            errors.append(
                "QUERY_MIN_RESULT_COUNT <= QUERY_DEFAULT_RESULT_COUNT "
                "<= QUERY_MAX_RESULT_COUNT must hold (min >= 1)"
            )

        if self.retry_max_attempts < 1:
            errors.append("RETRY_MAX_ATTEMPTS must be >= 1")

        if self.retry_base_delay_s < 0 or self.retry_base_delay_s > self.retry_max_delay_s:
            errors.append("RETRY_BASE_DELAY_S must be within [0, RETRY_MAX_DELAY_S]")

        if self.retry_backoff_factor < 1.0:
            errors.append("RETRY_BACKOFF_FACTOR must be >= 1")

        if self.rate_limit_max_wait_s < 0:
            errors.append("RATE_LIMIT_MAX_WAIT_S must be >= 0")

        if (
            self.vector_db_type == "chromadb"
            and self.vector_db_path is None
            and not self.vector_db_url
        ):
            errors.append("VECTOR_DB_TYPE=chromadb requires VECTOR_DB_PATH or VECTOR_DB_URL")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def rate_limits(self) -> dict[str, int]:
        """Per-provider request caps for the sliding window."""
        return {
            "embedding": self.rate_limit_embedding,
            "retrieval": self.rate_limit_retrieval,
            "generation": self.rate_limit_generation,
        }

    @property
    def embedding_enabled(self) -> bool:
        return self.embedding_provider != "none" and bool(self.openai_api_key)

    @property
    def llm_enabled(self) -> bool:
        return self.llm_provider != "none" and bool(self.openai_api_key)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding callers).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
