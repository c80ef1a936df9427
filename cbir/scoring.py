"""
Vector comparison metrics and multi-signal score combination.

Stateless helpers shared by the extractors and the search engine. Every
similarity returned here lies in [0, 1]; distances are mapped to a
similarity with the monotonic transform 1 / (1 + d).
"""

import logging
from typing import List, Mapping

import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def _as_vectors(a, b):
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise ConfigurationError(
            f"Cannot compare vectors of length {a.size} and {b.size}; "
            f"they were computed under different configurations"
        )
    return a, b


def hamming_distance(h1: int, h2: int) -> int:
    """Number of differing bits between two integer hashes."""
    return bin(h1 ^ h2).count("1")


def cosine_similarity(a, b) -> float:
    """
    Cosine of the angle between two vectors, clamped to [0, 1].

    Returns 0.0 when either vector is all-zero.
    """
    a, b = _as_vectors(a, b)
    a_norm = np.linalg.norm(a)
    b_norm = np.linalg.norm(b)
    if a_norm == 0 or b_norm == 0:
        return 0.0
    cosine = np.dot(a, b) / (a_norm * b_norm)
    return float(min(1.0, max(0.0, cosine)))


def euclidean_similarity(a, b) -> float:
    a, b = _as_vectors(a, b)
    return float(1.0 / (1.0 + np.linalg.norm(a - b)))


def manhattan_similarity(a, b) -> float:
    a, b = _as_vectors(a, b)
    return float(1.0 / (1.0 + np.abs(a - b).sum()))


def bhattacharyya_coefficient(a, b) -> float:
    """
    Overlap of two discrete distributions: sum(sqrt(a_i * b_i)).

    Clamped to [0, 1]. An all-zero distribution overlaps nothing.
    """
    a, b = _as_vectors(a, b)
    if not a.any() or not b.any():
        return 0.0
    coefficient = np.sqrt(np.clip(a * b, 0.0, None)).sum()
    return float(min(1.0, max(0.0, coefficient)))


def weighted_combine(scores: Mapping[str, float],
                     weights: Mapping[str, float]) -> float:
    """
    Combine per-signal similarities into a single score in [0, 1].

    The result is sum(score_i * weight_i) / sum(weight_i), so weights do
    not need to sum to 1. Signals missing from ``scores`` count as 0.
    All-zero weights yield 0.

    Raises:
        ConfigurationError: If any weight is negative.
    """
    total_weight = 0.0
    weighted = 0.0
    for name, weight in weights.items():
        if weight < 0:
            raise ConfigurationError(f"Weight '{name}' must be non-negative, got {weight}")
        total_weight += weight
        weighted += weight * scores.get(name, 0.0)

    if total_weight == 0:
        return 0.0
    return float(min(1.0, max(0.0, weighted / total_weight)))


def rank_results(results: List) -> List:
    """
    Sort search results by score (primary), most recently updated record
    (secondary) and media reference (final tiebreaker).

    Args:
        results: SearchResult objects.

    Returns:
        New list, highest score first.
    """
    ordered = sorted(results, key=lambda r: r.record.media_ref)
    ordered.sort(key=lambda r: r.record.updated_at, reverse=True)
    ordered.sort(key=lambda r: r.score, reverse=True)
    return ordered
