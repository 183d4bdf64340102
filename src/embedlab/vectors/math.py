"""Vector math with strict validation.

All public functions accept plain sequences of numbers (lists, tuples, numpy
arrays) and return Python floats or tuples of floats. Validation always runs
before any arithmetic: vectors must be one-dimensional, non-empty, numeric and
finite, and binary operations require equal dimensions.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np
import numpy.typing as npt

from embedlab.config.constants import SLERP_EPSILON
from embedlab.core.errors import ValidationError

Vector = tuple[float, ...]
VectorLike = Sequence[float] | npt.NDArray[np.floating]


def as_vector(values: object, name: str = "vector") -> npt.NDArray[np.float64]:
    """Validate ``values`` and return it as a float64 array.

    Raises:
        ValidationError: If the value is not a non-empty 1-D sequence of finite numbers.
    """
    if isinstance(values, (str, bytes)) or not isinstance(values, (Sequence, np.ndarray)):
        raise ValidationError.invalid_vector(name, "must be an array of numbers")
    if len(values) == 0:
        raise ValidationError.invalid_vector(name, "must not be empty")
    for item in values:
        # bool is an int subclass; a vector of flags is a caller bug.
        if isinstance(item, bool) or not isinstance(item, (int, float, np.number)):
            raise ValidationError.invalid_vector(name, "must contain only numbers")

    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValidationError.invalid_vector(name, "must be one-dimensional")
    if not np.all(np.isfinite(arr)):
        raise ValidationError.invalid_vector(name, "must contain only finite numbers")
    return arr


def _pair(
    a: VectorLike, b: VectorLike, names: tuple[str, str]
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    left = as_vector(a, names[0])
    right = as_vector(b, names[1])
    if left.shape[0] != right.shape[0]:
        raise ValidationError.dimension_mismatch(names[1], left.shape[0], right.shape[0])
    return left, right


def _to_tuple(arr: npt.NDArray[np.float64]) -> Vector:
    return tuple(float(x) for x in arr)


def dot_product(a: VectorLike, b: VectorLike) -> float:
    left, right = _pair(a, b, ("a", "b"))
    return float(np.dot(left, right))


def magnitude(a: VectorLike) -> float:
    return float(np.linalg.norm(as_vector(a, "a")))


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine of the angle between ``a`` and ``b``, clamped to [-1, 1].

    Raises:
        ValidationError: If either vector has zero magnitude.
    """
    left, right = _pair(a, b, ("a", "b"))
    norm_a = float(np.linalg.norm(left))
    norm_b = float(np.linalg.norm(right))
    if norm_a == 0.0 or norm_b == 0.0:
        raise ValidationError.zero_magnitude("cosine_similarity")
    value = float(np.dot(left, right)) / (norm_a * norm_b)
    return max(-1.0, min(1.0, value))


def euclidean_distance(a: VectorLike, b: VectorLike) -> float:
    left, right = _pair(a, b, ("a", "b"))
    return float(np.linalg.norm(left - right))


def add(a: VectorLike, b: VectorLike) -> Vector:
    left, right = _pair(a, b, ("a", "b"))
    return _to_tuple(left + right)


def subtract(a: VectorLike, b: VectorLike) -> Vector:
    left, right = _pair(a, b, ("a", "b"))
    return _to_tuple(left - right)


def scale(a: VectorLike, factor: float) -> Vector:
    if isinstance(factor, bool) or not isinstance(factor, (int, float)) or not math.isfinite(factor):
        raise ValidationError.invalid_vector("factor", "must be a finite number")
    return _to_tuple(as_vector(a, "a") * factor)


def normalize(a: VectorLike) -> Vector:
    """Scale ``a`` to unit length.

    Raises:
        ValidationError: If ``a`` has zero magnitude.
    """
    arr = as_vector(a, "a")
    norm = float(np.linalg.norm(arr))
    if norm == 0.0:
        raise ValidationError.zero_magnitude("normalize")
    return _to_tuple(arr / norm)


def weighted_sum(vectors: Sequence[VectorLike], weights: Sequence[float]) -> Vector:
    """Compute sum(weights[i] * vectors[i]) over equal-dimension vectors."""
    if len(vectors) == 0:
        raise ValidationError.invalid_request("'terms' must contain at least one vector")
    if len(vectors) != len(weights):
        raise ValidationError.invalid_request(
            "vectors and weights must have the same length",
            vectors=len(vectors),
            weights=len(weights),
        )

    rows = [as_vector(v, f"terms[{i}].vector") for i, v in enumerate(vectors)]
    dimension = rows[0].shape[0]
    for i, row in enumerate(rows[1:], start=1):
        if row.shape[0] != dimension:
            raise ValidationError.dimension_mismatch(
                f"terms[{i}].vector", dimension, row.shape[0]
            )

    coefficients = np.asarray(weights, dtype=np.float64)
    if not np.all(np.isfinite(coefficients)):
        raise ValidationError.invalid_vector("weights", "must contain only finite numbers")

    return _to_tuple(coefficients @ np.vstack(rows))


def slerp(a: VectorLike, b: VectorLike, t: float) -> Vector:
    """Spherical linear interpolation between ``a`` and ``b``.

    The result is always unit length. When the endpoints are (anti)parallel,
    sin(theta) vanishes and the normalized linear blend is returned instead.

    Raises:
        ValidationError: On invalid vectors, ``t`` outside [0, 1], or a
            zero-magnitude endpoint.
    """
    if isinstance(t, bool) or not isinstance(t, (int, float)) or not math.isfinite(t):
        raise ValidationError.invalid_vector("t", "must be a finite number")
    if t < 0.0 or t > 1.0:
        raise ValidationError.invalid_request("'t' must be between 0 and 1", t=t)

    left, right = _pair(a, b, ("a", "b"))
    cos_theta = cosine_similarity(left, right)
    theta = math.acos(cos_theta)
    sin_theta = math.sin(theta)

    if abs(sin_theta) < SLERP_EPSILON:
        blended = (1.0 - t) * left + t * right
    else:
        w_a = math.sin((1.0 - t) * theta) / sin_theta
        w_b = math.sin(t * theta) / sin_theta
        blended = w_a * left + w_b * right

    norm = float(np.linalg.norm(blended))
    if norm == 0.0:
        # Antiparallel endpoints at t=0.5 cancel out exactly.
        raise ValidationError.zero_magnitude("slerp")
    return _to_tuple(blended / norm)
