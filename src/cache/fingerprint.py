# src/cache/fingerprint.py — v4
"""Request fingerprinting for the answer cache.

Two requests that are logically identical (same trimmed question, same set
of categories in any order or casing, same result count and floor) must map
to the same key; anything else must not.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Iterable

FINGERPRINT_VERSION = "v1"

# Floors are compared, stored and hashed at this many decimal places.
FLOOR_DECIMALS = 4


def compute_fingerprint(
    query_text: str,
    filters: Iterable[str],
    result_count: int,
    similarity_floor: float,
) -> str:
    """Compute the stable cache key for a normalized request.

    Args:
        query_text: Trimmed, whitespace-collapsed question.
        filters: Lower-cased category tokens (order irrelevant).
        result_count: Clamped number of results.
        similarity_floor: Floor in [0, 1], already rounded to ``FLOOR_DECIMALS``.

    Returns:
        Hex SHA-256 digest.
    """
    payload = json.dumps(
        {
            "v": FINGERPRINT_VERSION,
            "q": query_text,
            "f": sorted(set(filters)),
            "k": int(result_count),
            "t": repr(round(float(similarity_floor), FLOOR_DECIMALS)),
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def normalize_query_text(text: str) -> str:
    """Trim and collapse internal whitespace runs to single spaces."""
    return re.sub(r"\s+", " ", text).strip()
