"""
Tests for vector math and similarity ranking.
"""

import math
from unittest.mock import patch

import numpy as np
import pytest

from context_keeper.vector.ops import (
    DimensionMismatchError,
    add,
    distance,
    normalize,
    rank_by_similarity,
    scale,
    similarity,
    subtract,
    weighted_average,
)


class TestSimilarity:
    """Cosine similarity behaviour."""

    def test_identical_vectors(self):
        """Identical vectors score 1."""
        assert similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        """Orthogonal vectors score 0."""
        assert similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        """Opposite vectors score -1."""
        assert similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector_scores_zero(self):
        """A zero-magnitude operand yields 0 instead of dividing by zero."""
        assert similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0

    def test_dimension_mismatch(self):
        """Different lengths are rejected."""
        with pytest.raises(DimensionMismatchError):
            similarity([1.0, 2.0], [1.0, 2.0, 3.0])

    def test_dimension_mismatch_is_value_error(self):
        """DimensionMismatchError can be caught as ValueError."""
        with pytest.raises(ValueError):
            similarity([1.0], [1.0, 2.0])


class TestArithmetic:
    """Element-wise helpers."""

    def test_normalize_unit_length(self):
        """Normalized vectors have magnitude 1."""
        result = normalize([3.0, 4.0])
        assert np.allclose(result, [0.6, 0.8])
        assert np.linalg.norm(result) == pytest.approx(1.0)

    def test_normalize_zero_vector(self):
        """Zero vectors are returned unchanged."""
        assert np.array_equal(normalize([0.0, 0.0]), [0.0, 0.0])

    def test_add_and_subtract(self):
        """Addition and subtraction are element-wise."""
        assert np.allclose(add([1.0, 2.0], [3.0, 4.0]), [4.0, 6.0])
        assert np.allclose(subtract([3.0, 4.0], [1.0, 2.0]), [2.0, 2.0])

    def test_add_dimension_mismatch(self):
        """Addition refuses operands of different length."""
        with pytest.raises(DimensionMismatchError):
            add([1.0], [1.0, 2.0])

    def test_scale(self):
        """Scaling multiplies every component."""
        assert np.allclose(scale([1.0, -2.0], 2.5), [2.5, -5.0])

    def test_distance(self):
        """Euclidean distance."""
        assert distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)

    def test_distance_dimension_mismatch(self):
        """Distance refuses operands of different length."""
        with pytest.raises(DimensionMismatchError):
            distance([0.0], [0.0, 0.0])


class TestWeightedAverage:
    """Weighted average validation and math."""

    def test_weights_are_normalized(self):
        """Weights 1 and 3 give a 25/75 mix."""
        result = weighted_average([[0.0, 0.0], [4.0, 8.0]], [1.0, 3.0])
        assert np.allclose(result, [3.0, 6.0])

    def test_empty_input(self):
        """No vectors is an error."""
        with pytest.raises(ValueError, match="No vectors"):
            weighted_average([], [])

    def test_count_mismatch(self):
        """Vector and weight counts must match."""
        with pytest.raises(ValueError, match="must match"):
            weighted_average([[1.0, 2.0]], [0.5, 0.5])

    def test_zero_weight_sum(self):
        """Weights summing to zero are rejected."""
        with pytest.raises(ValueError, match="zero"):
            weighted_average([[1.0], [2.0]], [1.0, -1.0])

    def test_dimension_mismatch(self):
        """All vectors must share the first vector's length."""
        with pytest.raises(DimensionMismatchError):
            weighted_average([[1.0, 2.0], [1.0]], [1.0, 1.0])


class TestRankBySimilarity:
    """Threshold, ordering and truncation."""

    def test_strictly_above_threshold(self):
        """A candidate scoring exactly the threshold is excluded."""
        query = [1.0, 0.0]
        candidates = [[1.0, 0.0], [0.0, 1.0]]
        ranked = rank_by_similarity(query, candidates, min_score=0.0, max_results=10)
        assert [c for c, _ in ranked] == [[1.0, 0.0]]

    def test_sorted_descending_and_truncated(self):
        """Best matches first, at most max_results."""
        query = [1.0, 0.0]
        candidates = [[1.0, 1.0], [1.0, 0.0], [1.0, 0.5]]
        ranked = rank_by_similarity(query, candidates, min_score=0.1, max_results=2)
        assert [c for c, _ in ranked] == [[1.0, 0.0], [1.0, 0.5]]
        assert ranked[0][1] >= ranked[1][1]

    def test_ties_keep_input_order(self):
        """Equal scores keep candidate order."""
        candidates = [{"id": "a", "v": [2.0, 0.0]}, {"id": "b", "v": [1.0, 0.0]}]
        ranked = rank_by_similarity([1.0, 0.0], candidates, 0.5, 10, get_vector=lambda c: c["v"])
        assert [c["id"] for c, _ in ranked] == ["a", "b"]

    def test_skips_missing_and_mismatched_vectors(self):
        """Candidates without a usable vector are ignored rather than failing the ranking."""
        candidates = [{"v": None}, {"v": [1.0, 0.0, 0.0]}, {"v": [1.0, 0.0]}]
        ranked = rank_by_similarity([1.0, 0.0], candidates, 0.5, 10, get_vector=lambda c: c["v"])
        assert len(ranked) == 1
        assert math.isclose(ranked[0][1], 1.0)

    def test_mismatched_vector_is_logged_as_skipped(self):
        """A dimension mismatch is reported through the structured vector log."""
        candidates = [{"v": [1.0, 0.0, 0.0]}]
        with patch("context_keeper.vector.ops.logger") as log:
            assert rank_by_similarity([1.0, 0.0], candidates, 0.5, 10, get_vector=lambda c: c["v"]) == []

        log.log_vector_operation.assert_called_once()
        assert log.log_vector_operation.call_args[0][0] == "rank"
        assert log.log_vector_operation.call_args[1]["status"] == "skipped"
