# src/core/similarity.py — v3
"""Cosine similarity between one query vector and a matrix of stored vectors.

Scores are mapped to [0, 1] (1 = identical direction) so they can be compared
directly against a similarity floor.
"""

from __future__ import annotations

import numpy as np


def query_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Compute similarity of ``query`` against every row of ``matrix``.

    Args:
        query: 1D array of shape (n_features,).
        matrix: 2D array of shape (n_rows, n_features).

    Returns:
        1D array of shape (n_rows,) with values in [0, 1].

    Raises:
        ValueError: If shapes are inconsistent.
    """
    if query.ndim != 1:
        raise ValueError(f"Expected 1D query vector, got {query.ndim}D")
    if matrix.ndim != 2:
        raise ValueError(f"Expected 2D matrix, got {matrix.ndim}D")
    if matrix.shape[0] == 0:
        return np.empty((0,), dtype=np.float64)
    if matrix.shape[1] != query.shape[0]:
        raise ValueError(
            f"Dimension mismatch: query has {query.shape[0]}, "
            f"matrix rows have {matrix.shape[1]}"
        )

    q_norm = max(float(np.linalg.norm(query)), 1e-10)
    row_norms = np.maximum(np.linalg.norm(matrix, axis=1), 1e-10)
    cosine = (matrix @ query) / (row_norms * q_norm)
    return np.clip(cosine, 0.0, 1.0)
