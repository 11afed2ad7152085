# src/query/normalizer.py — v2
"""Turn raw query parameters into a canonical ``NormalizedRequest``.

Raw shapes (scalar-or-list filters, numeric strings, missing values) are
resolved here once; nothing downstream inspects raw input again.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from insurag.cache.fingerprint import (
    FLOOR_DECIMALS,
    compute_fingerprint,
    normalize_query_text,
)
from insurag.core.errors import RequestValidationError
from insurag.core.models import NormalizedRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizerLimits:
    """Bounds applied while normalizing."""

    max_query_chars: int = 1000
    default_result_count: int = 5
    min_result_count: int = 1
    max_result_count: int = 20
    default_similarity_floor: float = 0.7

    @classmethod
    def from_settings(cls, settings: Any) -> NormalizerLimits:
        return cls(
            max_query_chars=settings.query_max_chars,
            default_result_count=settings.query_default_result_count,
            min_result_count=settings.query_min_result_count,
            max_result_count=settings.query_max_result_count,
            default_similarity_floor=settings.query_default_similarity_floor,
        )


DEFAULT_LIMITS = NormalizerLimits()


def normalize(
    raw_query: Any,
    raw_filters: Any = None,
    raw_count: Any = None,
    raw_threshold: Any = None,
    limits: NormalizerLimits = DEFAULT_LIMITS,
) -> NormalizedRequest:
    """Validate and canonicalize one request.

    Raises:
        RequestValidationError: Empty/over-long/non-string query, or a
            negative or non-numeric count/threshold.
    """
    query_text = _normalize_query(raw_query, limits.max_query_chars)
    filters = normalize_filters(raw_filters)
    result_count = _normalize_count(raw_count, limits)
    floor = _normalize_threshold(raw_threshold, limits.default_similarity_floor)

    fingerprint = compute_fingerprint(query_text, filters, result_count, floor)
    return NormalizedRequest(
        query_text=query_text,
        filters=filters,
        result_count=result_count,
        similarity_floor=floor,
        fingerprint=fingerprint,
    )


def normalize_filters(raw_filters: Any) -> frozenset[str]:
    """Reduce a scalar-or-list category filter to a set of lowercase tokens.

    Non-string, null and empty-after-trim entries are dropped silently; an
    all-invalid input means "no filter".
    """
    if raw_filters is None:
        return frozenset()
    if isinstance(raw_filters, str):
        entries: list[Any] = [raw_filters]
    elif isinstance(raw_filters, (list, tuple, set, frozenset)):
        entries = list(raw_filters)
    else:
        entries = [raw_filters]

    tokens: set[str] = set()
    dropped = 0
    for entry in entries:
        if not isinstance(entry, str):
            dropped += 1
            continue
        token = entry.strip().lower()
        if not token:
            dropped += 1
            continue
        tokens.add(token)

    if dropped:
        logger.debug("Dropped %d invalid filter entries", dropped)
    return frozenset(tokens)


def _normalize_query(raw_query: Any, max_chars: int) -> str:
    if raw_query is None:
        raise RequestValidationError(
            "Question is required", field="query_text", issue="missing"
        )
    if not isinstance(raw_query, str):
        raise RequestValidationError(
            "Question must be a string", field="query_text", issue="invalid_type"
        )
    text = normalize_query_text(raw_query)
    if not text:
        raise RequestValidationError(
            "Question cannot be empty", field="query_text", issue="empty"
        )
    if len(text) > max_chars:
        raise RequestValidationError(
            f"Question is too long (max {max_chars} characters)",
            field="query_text",
            issue="too_long",
            max_length=max_chars,
        )
    return text


def _normalize_count(raw_count: Any, limits: NormalizerLimits) -> int:
    if raw_count is None or (isinstance(raw_count, str) and not raw_count.strip()):
        return limits.default_result_count

    value = _parse_number(raw_count, field="result_count")
    if not float(value).is_integer():
        raise RequestValidationError(
            "Result count must be a whole number",
            field="result_count",
            issue="invalid_type",
        )
    if value < 0:
        raise RequestValidationError(
            "Result count cannot be negative", field="result_count", issue="negative"
        )

    count = int(value)
    clamped = min(max(count, limits.min_result_count), limits.max_result_count)
    if clamped != count:
        logger.debug("Clamped result_count %d -> %d", count, clamped)
    return clamped


def _normalize_threshold(raw_threshold: Any, default: float) -> float:
    """Resolve the floor, capped at 1.0 and rounded to the precision it is hashed at."""
    if raw_threshold is None or (
        isinstance(raw_threshold, str) and not raw_threshold.strip()
    ):
        return round(default, FLOOR_DECIMALS)

    value = float(_parse_number(raw_threshold, field="similarity_threshold"))
    if value < 0:
        raise RequestValidationError(
            "Similarity threshold cannot be negative",
            field="similarity_threshold",
            issue="negative",
        )
    return round(min(value, 1.0), FLOOR_DECIMALS)


def _parse_number(raw: Any, field: str) -> float | int:
    """Accept ints, floats and numeric strings; reject bools, NaN and the rest."""
    if isinstance(raw, bool):
        raise RequestValidationError(
            f"{field} must be numeric", field=field, issue="invalid_type"
        )
    if isinstance(raw, (int, float)):
        value: float | int = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            try:
                value = float(raw.strip())
            except ValueError:
                raise RequestValidationError(
                    f"{field} must be numeric", field=field, issue="invalid_type"
                ) from None
    else:
        raise RequestValidationError(
            f"{field} must be numeric", field=field, issue="invalid_type"
        )

    if isinstance(value, float) and not math.isfinite(value):
        raise RequestValidationError(
            f"{field} must be a finite number", field=field, issue="invalid_type"
        )
    return value
