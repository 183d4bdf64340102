"""In-memory nearest-neighbor ranking and vector arithmetic.

Scores are raw metric values: cosine similarity and dot product rank
descending, Euclidean distance ranks ascending. Ties keep candidate order.
"""

from __future__ import annotations

from collections.abc import Sequence

from embedlab.config.constants import SEARCH_MAX_K
from embedlab.core.errors import ValidationError
from embedlab.search.models import (
    ArithmeticRequest,
    ArithmeticResult,
    Candidate,
    Metric,
    Neighbor,
    SimilarityRequest,
    SimilarityResult,
    SlerpRequest,
)
from embedlab.vectors.math import (
    VectorLike,
    as_vector,
    cosine_similarity,
    dot_product,
    euclidean_distance,
    slerp,
    weighted_sum,
)

DEFAULT_K = 10


def resolve_k(k: int | None, default: int, maximum: int) -> int:
    if k is None:
        return default
    if isinstance(k, bool) or not isinstance(k, int) or k < 1 or k > maximum:
        raise ValidationError.k_out_of_range(k, maximum)
    return k


def score(a: VectorLike, b: VectorLike, metric: Metric) -> float:
    if metric is Metric.COSINE:
        return cosine_similarity(a, b)
    if metric is Metric.EUCLIDEAN:
        return euclidean_distance(a, b)
    return dot_product(a, b)


def _check_dimensions(query: VectorLike, candidates: Sequence[Candidate]) -> None:
    dimension = len(as_vector(query, "query"))
    for i, candidate in enumerate(candidates):
        actual = len(as_vector(candidate.vector, f"candidates[{i}].vector"))
        if actual != dimension:
            raise ValidationError.dimension_mismatch(f"candidates[{i}].vector", dimension, actual)


def rank_candidates(
    query: VectorLike,
    candidates: Sequence[Candidate],
    *,
    k: int | None = None,
    metric: Metric = Metric.COSINE,
    default_k: int = DEFAULT_K,
) -> list[Neighbor]:
    """Score every candidate against ``query`` and return the top ``k``.

    All inputs are validated before any scoring happens.
    """
    limit = resolve_k(k, default_k, SEARCH_MAX_K)
    if not candidates:
        raise ValidationError.invalid_request(
            "'candidates' array must contain at least one candidate."
        )
    _check_dimensions(query, candidates)

    scored = [Neighbor(id=c.id, score=score(query, c.vector, metric)) for c in candidates]
    scored.sort(key=lambda n: n.score, reverse=not metric.ascending)
    return scored[:limit]


def arithmetic(request: ArithmeticRequest, *, default_k: int = DEFAULT_K) -> ArithmeticResult:
    """Weighted sum of the request terms, ranked against candidates when given."""
    result = weighted_sum(
        [term.vector for term in request.terms],
        [term.weight for term in request.terms],
    )
    neighbors = None
    if request.candidates:
        neighbors = rank_candidates(
            result,
            request.candidates,
            k=request.k,
            metric=request.metric,
            default_k=default_k,
        )
    return ArithmeticResult(result=result, metric=request.metric, neighbors=neighbors)


def pairwise_matrix(request: SimilarityRequest) -> SimilarityResult:
    """N x N matrix of the request metric over the request vectors."""
    vectors = [as_vector(v, f"vectors[{i}]") for i, v in enumerate(request.vectors)]
    dimension = len(vectors[0])
    for i, v in enumerate(vectors):
        if len(v) != dimension:
            raise ValidationError.dimension_mismatch(f"vectors[{i}]", dimension, len(v))

    matrix = [[score(a, b, request.metric) for b in vectors] for a in vectors]
    return SimilarityResult(metric=request.metric, matrix=matrix)


def slerp_path(request: SlerpRequest) -> list[tuple[float, ...]]:
    """``steps`` unit vectors from normalize(start) to normalize(end)."""
    last = request.steps - 1
    return [slerp(request.start, request.end, i / last) for i in range(request.steps)]
