# src/rag/embeddings/embedder_factory.py — v2
"""Factory: instantiate embedding provider from configuration."""

from __future__ import annotations

import logging

from insurag.config.settings import Settings
from insurag.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)

_PROVIDER_REGISTRY: dict[str, str] = {
    "openai": "insurag.rag.embeddings.openai_embedder.OpenAIEmbedder",
}


class UnsupportedEmbeddingProviderError(ValueError):
    """Raised when an embedding provider is not registered."""


def create_embedder(settings: Settings) -> BaseEmbedder | None:
    """Instantiate the configured embedding provider.

    Args:
        settings: Application settings. Uses EMBEDDING_PROVIDER and EMBEDDING_MODEL.

    Returns:
        Configured BaseEmbedder, or None when the provider is disabled
        ("none") or has no credentials. The embedding stage then runs in
        fallback mode.
    """
    provider = settings.embedding_provider
    if provider == "none":
        logger.info("Embedding provider disabled (EMBEDDING_PROVIDER=none)")
        return None

    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedEmbeddingProviderError(
            f"Unsupported embedding provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    if provider == "openai" and not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; embeddings will use hash fallback")
        return None

    cls = _import_class(_PROVIDER_REGISTRY[provider])
    kwargs: dict = {
        "model": settings.embedding_model,
        "dimensions": settings.embedding_dimensions,
    }
    if provider == "openai":
        kwargs["api_key"] = settings.openai_api_key
        kwargs["base_url"] = settings.openai_base_url

    logger.debug("Creating embedder: provider=%s", provider)
    return cls(**kwargs)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    import importlib
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
