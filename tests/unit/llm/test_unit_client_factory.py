# tests/unit/llm/test_unit_client_factory.py — v3
"""Tests for llm/client_factory.py."""

from __future__ import annotations

from insurag.config.settings import Settings
from insurag.llm.adapters.openai_adapter import OpenAIAdapter
from insurag.llm.client_factory import create_llm_client


class TestCreateLLMClient:
    def test_disabled(self):
        assert create_llm_client(Settings(_env_file=None, llm_provider="none")) is None

    def test_missing_key_is_disabled(self):
        assert create_llm_client(Settings(_env_file=None, openai_api_key="")) is None

    def test_openai(self):
        s = Settings(_env_file=None, openai_api_key="sk-test", llm_model="gpt-4o")
        client = create_llm_client(s)
        assert isinstance(client, OpenAIAdapter)
        assert client.provider_name == "openai"
        assert client.model_name == "gpt-4o"
