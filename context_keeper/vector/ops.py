"""
Vector math over fixed-length embeddings.

Pure functions; every operation involving two vectors refuses operands of
different length instead of computing a meaningless result.
"""

from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from ..util.logging import logger

T = TypeVar("T")


class DimensionMismatchError(ValueError):
    """Raised when vector operands differ in length."""
    pass


def _as_array(vector) -> np.ndarray:
    return np.asarray(vector, dtype=float)


def _check_same_length(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape != b.shape:
        raise DimensionMismatchError(
            f"Vectors must have the same dimensions: {a.shape[0] if a.ndim else 0} != {b.shape[0] if b.ndim else 0}"
        )


def similarity(a, b) -> float:
    """Cosine similarity; 0.0 when either vector has zero magnitude."""
    a, b = _as_array(a), _as_array(b)
    _check_same_length(a, b)

    magnitude_a = np.linalg.norm(a)
    magnitude_b = np.linalg.norm(b)
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return float(np.dot(a, b) / (magnitude_a * magnitude_b))


def normalize(vector) -> np.ndarray:
    """Scale to unit length; zero vectors are returned unchanged."""
    v = _as_array(vector)
    magnitude = np.linalg.norm(v)
    if magnitude == 0:
        return v
    return v / magnitude


def add(a, b) -> np.ndarray:
    a, b = _as_array(a), _as_array(b)
    _check_same_length(a, b)
    return a + b


def subtract(a, b) -> np.ndarray:
    """Subtract vector b from vector a."""
    a, b = _as_array(a), _as_array(b)
    _check_same_length(a, b)
    return a - b


def scale(vector, scalar: float) -> np.ndarray:
    return _as_array(vector) * scalar


def weighted_average(vectors: Sequence, weights: Sequence[float]) -> np.ndarray:
    """
    Weighted average of several vectors.

    Weights are normalized to sum to 1 before combining.

    Raises:
        ValueError: no vectors, vector/weight count mismatch, or zero weight sum
        DimensionMismatchError: a vector differs in length from the first one
    """
    if len(vectors) == 0:
        raise ValueError("No vectors provided")
    if len(vectors) != len(weights):
        raise ValueError("Number of vectors must match number of weights")

    arrays = [_as_array(v) for v in vectors]
    first = arrays[0]
    for other in arrays[1:]:
        _check_same_length(first, other)

    weight_array = np.asarray(weights, dtype=float)
    weight_sum = weight_array.sum()
    if weight_sum == 0:
        raise ValueError("Sum of weights must not be zero")

    normalized_weights = weight_array / weight_sum
    return np.sum([w * v for w, v in zip(normalized_weights, arrays)], axis=0)


def distance(a, b) -> float:
    """Euclidean distance between two vectors."""
    a, b = _as_array(a), _as_array(b)
    _check_same_length(a, b)
    return float(np.linalg.norm(a - b))


def rank_by_similarity(
    query,
    candidates: Sequence[T],
    min_score: float,
    max_results: int,
    get_vector: Callable[[T], Optional[Sequence[float]]] = lambda c: c,
) -> List[Tuple[T, float]]:
    """
    Rank candidates by cosine similarity to a query vector.

    Keeps candidates scoring strictly above min_score, sorted descending.
    Ties keep the candidates' original order (stable sort). Candidates with no
    vector are skipped, as are candidates whose dimensionality differs from
    the query's (logged).

    Returns:
        List of (candidate, score) pairs, at most max_results long
    """
    query_vector = _as_array(query)
    scored = []
    for candidate in candidates:
        vector = get_vector(candidate)
        if vector is None or len(vector) == 0:
            continue
        try:
            score = similarity(query_vector, vector)
        except DimensionMismatchError as e:
            logger.log_vector_operation("rank", str(getattr(candidate, "id", "")),
                                        {"error": str(e)}, status="skipped")
            continue
        if score > min_score:
            scored.append((candidate, score))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:max_results]
