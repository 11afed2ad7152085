# tests/integration/conftest.py — v8
"""Shared fixtures for integration tests.

Integration tests drive the whole service (normalizer, cache, stages,
executor, analytics) through its public surface. Providers stay in-process
doubles; nothing here needs network access.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.conftest import FRAGMENTS, keyword_vector


def pytest_configure(config):
    config.addinivalue_line("markers", "chromadb: marks tests requiring a ChromaDB server")


@pytest.fixture
def seed_file(tmp_path) -> Path:
    """JSONL fragment corpus with precomputed keyword vectors."""
    path = tmp_path / "fragments.jsonl"
    with path.open("w", encoding="utf-8") as fh:
        for fragment in FRAGMENTS:
            record = {**fragment, "embedding": keyword_vector(fragment["text"])}
            fh.write(json.dumps(record, ensure_ascii=False) + "\n")
    return path
