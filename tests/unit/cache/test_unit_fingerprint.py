# tests/unit/cache/test_unit_fingerprint.py — v3
"""Tests for cache/fingerprint.py — stable request keys."""

from __future__ import annotations

from insurag.cache.fingerprint import compute_fingerprint, normalize_query_text


class TestComputeFingerprint:
    def test_deterministic(self):
        a = compute_fingerprint("q", ["health"], 5, 0.7)
        b = compute_fingerprint("q", ["health"], 5, 0.7)
        assert a == b
        assert len(a) == 64

    def test_filter_order_irrelevant(self):
        assert compute_fingerprint("q", ["b", "a"], 5, 0.7) == compute_fingerprint("q", {"a", "b"}, 5, 0.7)

    def test_floor_precision(self):
        assert compute_fingerprint("q", [], 5, 0.7) == compute_fingerprint("q", [], 5, 0.70000001)
        assert compute_fingerprint("q", [], 5, 0.7) != compute_fingerprint("q", [], 5, 0.71)

    def test_empty_filter_differs_from_filtered(self):
        assert compute_fingerprint("q", [], 5, 0.7) != compute_fingerprint("q", ["health"], 5, 0.7)


class TestNormalizeQueryText:
    def test_collapse(self):
        assert normalize_query_text("  a \t b\n c  ") == "a b c"
