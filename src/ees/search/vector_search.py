"""Exact linear-scan similarity search over stored embeddings.

Every metric is reported on a single "higher is more similar" scale so that
ordering and thresholding work the same way regardless of metric:

* ``cosine``      -> cosine similarity in [-1, 1] (0 when either vector is all zeros)
* ``dot_product`` -> raw inner product
* ``euclidean``   -> ``1 / (1 + distance)`` in (0, 1]; distance 0 scores 1.0
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import numpy as np

from ees.domain.exceptions import DimensionMismatchError


class SimilarityMetric(str, Enum):
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT_PRODUCT = "dot_product"


class Candidate(Protocol):
    id: int | None

    @property
    def vector(self) -> list[float]: ...


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    record: Candidate
    score: float


def _scores(query: np.ndarray, matrix: np.ndarray, metric: SimilarityMetric) -> np.ndarray:
    if metric == SimilarityMetric.DOT_PRODUCT:
        return matrix @ query
    if metric == SimilarityMetric.EUCLIDEAN:
        distances = np.linalg.norm(matrix - query, axis=1)
        return 1.0 / (1.0 + distances)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(norms == 0, 0.0, dots / np.where(norms == 0, 1.0, norms))


def search_vectors(
    query_vector: Sequence[float],
    candidates: Sequence[Candidate],
    *,
    metric: SimilarityMetric = SimilarityMetric.COSINE,
    limit: int = 10,
    threshold: float | None = None,
) -> list[ScoredCandidate]:
    """Score *candidates* against *query_vector* and return the best *limit*.

    Raises DimensionMismatchError if any candidate's length differs from the
    query's; no candidate is scored until all have been checked.
    """
    if limit <= 0:
        raise ValueError("limit must be >= 1.")
    if not candidates:
        return []

    metric = SimilarityMetric(metric)
    dim = len(query_vector)
    vectors = [c.vector for c in candidates]
    for cand, vec in zip(candidates, vectors):
        if len(vec) != dim:
            raise DimensionMismatchError(expected=dim, actual=len(vec), record_id=cand.id)

    query = np.asarray(query_vector, dtype=np.float64)
    matrix = np.asarray(vectors, dtype=np.float64).reshape(len(vectors), dim)
    scores = _scores(query, matrix, metric)

    hits = [
        ScoredCandidate(record=cand, score=float(score))
        for cand, score in zip(candidates, scores)
        if threshold is None or score >= threshold
    ]
    hits.sort(key=lambda h: (-h.score, h.record.id))
    return hits[:limit]
