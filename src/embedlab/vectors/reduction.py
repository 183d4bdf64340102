"""Dimensionality reduction for plotting embeddings in 2-D or 3-D.

``reduce_with_pca`` is a linear projection onto the leading principal axes,
computed with an SVD of the centered matrix. ``reduce_with_umap`` delegates to
umap-learn for a non-linear layout that keeps local neighborhoods together.
Both validate the matrix and the target dimension before any work is done and
return one row of ``target`` floats per input vector, in input order.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt
import structlog

from embedlab.core.errors import InternalError, ValidationError
from embedlab.vectors.math import Vector, as_vector

log = structlog.get_logger(__name__)

UMAP_DEFAULT_NEIGHBORS = 15


class ReductionMethod(str, Enum):
    PCA = "pca"
    UMAP = "umap"


def as_matrix(vectors: object, name: str = "vectors") -> npt.NDArray[np.float64]:
    """Validate a non-empty list of equal-length finite vectors.

    Raises:
        ValidationError: On an empty matrix, a malformed row or a ragged row.
    """
    if isinstance(vectors, (str, bytes)) or not isinstance(vectors, (Sequence, np.ndarray)):
        raise ValidationError.invalid_vector(name, "must be an array of numeric vectors")
    if len(vectors) == 0:
        raise ValidationError.invalid_vector(name, "must contain at least one vector")

    rows = [as_vector(row, f"{name}[{i}]") for i, row in enumerate(vectors)]
    dimension = rows[0].shape[0]
    for i, row in enumerate(rows):
        if row.shape[0] != dimension:
            raise ValidationError.dimension_mismatch(f"{name}[{i}]", dimension, row.shape[0])
    return np.vstack(rows)


def _check_target(target: Any, dimension: int) -> int:
    if isinstance(target, bool) or not isinstance(target, (int, np.integer)):
        raise ValidationError.target_dimension_out_of_range(target, dimension)
    if target <= 0 or target > dimension:
        raise ValidationError.target_dimension_out_of_range(target, dimension)
    return int(target)


def _to_rows(arr: npt.NDArray[np.float64]) -> list[Vector]:
    return [tuple(float(x) for x in row) for row in arr]


def reduce_with_pca(vectors: Sequence[Sequence[float]], target: int) -> list[Vector]:
    """Project ``vectors`` onto their first ``target`` principal components.

    Data is centered, not scaled. Each component's sign is fixed so that its
    largest loading is positive, which makes the output deterministic. When
    there are fewer informative axes than ``target`` (e.g. a single point) the
    remaining coordinates are zero.
    """
    matrix = as_matrix(vectors)
    k = _check_target(target, matrix.shape[1])

    centered = matrix - matrix.mean(axis=0)
    _, _, vt = np.linalg.svd(centered, full_matrices=False)
    axes = vt[:k]
    pivots = np.argmax(np.abs(axes), axis=1)
    signs = np.sign(axes[np.arange(axes.shape[0]), pivots])
    signs[signs == 0] = 1.0
    axes = axes * signs[:, None]

    projected = np.zeros((matrix.shape[0], k), dtype=np.float64)
    projected[:, : axes.shape[0]] = centered @ axes.T
    log.debug("vectors.reduced", method="pca", points=matrix.shape[0], source=matrix.shape[1], target=k)
    return _to_rows(projected)


def reduce_with_umap(
    vectors: Sequence[Sequence[float]],
    target: int,
    *,
    n_neighbors: int = UMAP_DEFAULT_NEIGHBORS,
    random_state: int | None = None,
) -> list[Vector]:
    """Embed ``vectors`` into ``target`` dimensions with UMAP.

    ``n_neighbors`` is clamped to the number of points so small inputs still
    produce a layout. Pass ``random_state`` for a reproducible embedding.

    Raises:
        ValidationError: On a malformed matrix or target.
        InternalError: If umap-learn fails on validated input.
    """
    matrix = as_matrix(vectors)
    k = _check_target(target, matrix.shape[1])
    points = matrix.shape[0]
    if points <= k + 1:
        # Too few points to fit a manifold; a layout of coincident points.
        return _to_rows(np.zeros((points, k), dtype=np.float64))

    import umap

    reducer = umap.UMAP(
        n_components=k,
        n_neighbors=max(2, min(n_neighbors, points - 1)),
        init="random" if points <= UMAP_DEFAULT_NEIGHBORS else "spectral",
        random_state=random_state,
    )
    try:
        embedding = reducer.fit_transform(matrix)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise InternalError.unexpected(
            "UMAP reduction failed", method="umap", points=points, cause=str(e)
        ) from e
    log.debug("vectors.reduced", method="umap", points=points, source=matrix.shape[1], target=k)
    return _to_rows(np.asarray(embedding, dtype=np.float64))


def reduce(
    vectors: Sequence[Sequence[float]],
    target: int,
    method: ReductionMethod | str = ReductionMethod.PCA,
) -> list[Vector]:
    """Dispatch to the reducer named by ``method``."""
    try:
        method = ReductionMethod(method)
    except ValueError:
        raise ValidationError.invalid_request(
            "'method' must be either 'pca' or 'umap'", field="method"
        ) from None
    if method is ReductionMethod.UMAP:
        return reduce_with_umap(vectors, target)
    return reduce_with_pca(vectors, target)
