# src/llm/client_factory.py — v3
"""Factory: instantiate the answer-generation LLM client from settings."""

from __future__ import annotations

import logging

from insurag.config.settings import Settings
from insurag.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

# Registry of provider name → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "openai": "insurag.llm.adapters.openai_adapter.OpenAIAdapter",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_llm_client(settings: Settings) -> BaseLLMClient | None:
    """Instantiate the configured adapter.

    Args:
        settings: Application settings (LLM_PROVIDER, LLM_MODEL, API keys).

    Returns:
        Configured BaseLLMClient, or None when generation is disabled
        ("none") or has no credentials. The generation stage then answers
        from its deterministic template.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    provider = settings.llm_provider
    if provider == "none":
        logger.info("LLM provider disabled (LLM_PROVIDER=none)")
        return None

    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    if provider == "openai" and not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; answers will use the fallback template")
        return None

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])
    init_kwargs: dict[str, object] = {"model": settings.llm_model}
    if provider == "openai":
        init_kwargs["api_key"] = settings.openai_api_key
        init_kwargs["base_url"] = settings.openai_base_url

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, settings.llm_model)
    return adapter_cls(**init_kwargs)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    import importlib

    module = importlib.import_module(module_path)
    return getattr(module, class_name)
