"""Tests for vectors/math.py."""

import math

import numpy as np
import pytest

from embedlab.core.errors import ErrorCode, ValidationError
from embedlab.vectors.math import (
    add,
    as_vector,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    magnitude,
    normalize,
    scale,
    slerp,
    subtract,
    weighted_sum,
)

PAIRS = [
    ([1.0, 2.0, 3.0], [4.0, -5.0, 6.0]),
    ([0.5, 0.5], [-0.5, 0.25]),
    ([3.0], [-7.0]),
    ([1e-3, 2e3, -4.0, 0.0], [5.0, 0.1, 0.2, 9.0]),
]


class TestAsVector:
    def test_accepts_lists_tuples_and_arrays(self) -> None:
        assert as_vector([1, 2.5]).tolist() == [1.0, 2.5]
        assert as_vector((1.0,)).tolist() == [1.0]
        assert as_vector(np.array([0.0, 1.0])).tolist() == [0.0, 1.0]

    @pytest.mark.parametrize(
        "value",
        [[], "abc", None, 3.0, [1.0, "x"], [1.0, True], [1.0, math.nan], [math.inf], [[1.0], [2.0]]],
    )
    def test_rejects_invalid_vectors(self, value: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            as_vector(value, "query")

        assert exc_info.value.code is ErrorCode.INVALID_VECTOR
        assert exc_info.value.details["field"] == "query"


class TestMetrics:
    @pytest.mark.parametrize(("a", "b"), PAIRS)
    def test_cosine_in_unit_range(self, a: list[float], b: list[float]) -> None:
        assert -1.0 <= cosine_similarity(a, b) <= 1.0

    @pytest.mark.parametrize(("a", "_b"), PAIRS)
    def test_cosine_self_is_one(self, a: list[float], _b: list[float]) -> None:
        assert cosine_similarity(a, a) == pytest.approx(1.0)

    def test_cosine_orthogonal_and_opposite(self) -> None:
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_cosine_zero_magnitude_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            cosine_similarity([0.0, 0.0], [1.0, 0.0])

        assert exc_info.value.code is ErrorCode.ZERO_MAGNITUDE

    @pytest.mark.parametrize(("a", "b"), PAIRS)
    def test_euclidean_non_negative_and_zero_on_self(self, a: list[float], b: list[float]) -> None:
        assert euclidean_distance(a, b) >= 0.0
        assert euclidean_distance(a, a) == 0.0

    def test_euclidean_known_value(self) -> None:
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)

    def test_dot_known_value(self) -> None:
        assert dot_product([1, 2, 3], [4, 5, 6]) == pytest.approx(32.0)

    def test_dimension_mismatch_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            dot_product([1.0, 2.0], [1.0])

        assert exc_info.value.code is ErrorCode.DIMENSION_MISMATCH
        assert exc_info.value.details["expected"] == 2
        assert exc_info.value.details["actual"] == 1


class TestElementwise:
    def test_add_subtract_scale(self) -> None:
        assert add([1, 2], [3, 4]) == (4.0, 6.0)
        assert subtract([1, 2], [3, 4]) == (-2.0, -2.0)
        assert scale([1, -2], 0.5) == (0.5, -1.0)

    def test_scale_rejects_non_finite_factor(self) -> None:
        with pytest.raises(ValidationError):
            scale([1.0], math.inf)

    def test_normalize_unit_length(self) -> None:
        result = normalize([3.0, 4.0])

        assert result == pytest.approx((0.6, 0.8))
        assert magnitude(result) == pytest.approx(1.0)

    def test_normalize_zero_raises(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize([0.0, 0.0, 0.0])

        assert exc_info.value.code is ErrorCode.ZERO_MAGNITUDE


class TestWeightedSum:
    def test_analogy_example(self) -> None:
        # king - man
        assert weighted_sum([[1, 2, 3], [1, 1, 1]], [1.0, -1.0]) == (0.0, 1.0, 2.0)

    def test_mismatched_dimensions_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            weighted_sum([[1, 2], [1, 2, 3]], [1.0, 1.0])

        assert exc_info.value.details["field"] == "terms[1].vector"

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValidationError):
            weighted_sum([], [])


class TestSlerp:
    A = [1.0, 0.0, 0.0]
    B = [0.0, 2.0, 0.0]

    def test_endpoints_are_normalized_inputs(self) -> None:
        assert slerp(self.A, self.B, 0.0) == pytest.approx(normalize(self.A))
        assert slerp(self.A, self.B, 1.0) == pytest.approx(normalize(self.B))

    @pytest.mark.parametrize("t", [0.0, 0.1, 0.25, 0.5, 0.9, 1.0])
    def test_always_unit_length(self, t: float) -> None:
        assert magnitude(slerp(self.A, self.B, t)) == pytest.approx(1.0)

    def test_midpoint_weights_raw_endpoints_equally(self) -> None:
        # Weights apply to the raw endpoints; normalizing happens last.
        mid = slerp(self.A, self.B, 0.5)

        assert mid == pytest.approx((1 / math.sqrt(5.0), 2 / math.sqrt(5.0), 0.0))

    def test_midpoint_of_unit_endpoints_bisects_angle(self) -> None:
        mid = slerp([1.0, 0.0, 0.0], [0.0, 1.0, 0.0], 0.5)

        assert mid == pytest.approx((math.sqrt(0.5), math.sqrt(0.5), 0.0))

    def test_parallel_vectors_fall_back_to_linear(self) -> None:
        result = slerp([1.0, 1.0], [2.0, 2.0], 0.3)

        assert result == pytest.approx(normalize([1.0, 1.0]))

    @pytest.mark.parametrize("t", [-0.1, 1.5])
    def test_t_out_of_range_rejected(self, t: float) -> None:
        with pytest.raises(ValidationError):
            slerp(self.A, self.B, t)

    def test_non_finite_t_rejected(self) -> None:
        with pytest.raises(ValidationError):
            slerp(self.A, self.B, math.nan)

    def test_zero_vector_rejected(self) -> None:
        with pytest.raises(ValidationError):
            slerp([0.0, 0.0], [1.0, 0.0], 0.5)
