"""Cosine similarity helpers."""

from __future__ import annotations

import numpy as np


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    a = np.asarray(a, dtype="float64")
    b = np.asarray(b, dtype="float64")
    denominator = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def cosine_scores(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine similarity between ``query`` and every row of ``matrix``.

    Rows (or a query) with zero norm score 0.0 instead of NaN.
    """
    matrix = np.asarray(matrix, dtype="float64")
    query = np.asarray(query, dtype="float64")
    if matrix.shape[0] == 0:
        return np.zeros(0, dtype="float64")
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denominators = row_norms * query_norm
    dots = matrix @ query
    scores = np.zeros_like(dots)
    np.divide(dots, denominators, out=scores, where=denominators > 0)
    return scores


def rank(scores: np.ndarray, top_k: int) -> np.ndarray:
    """Indices of the ``top_k`` highest scores, ties kept in insertion order."""
    if top_k <= 0 or scores.shape[0] == 0:
        return np.zeros(0, dtype=int)
    order = np.argsort(-scores, kind="stable")
    return order[:top_k]
