"""Vector math exports."""

from embedlab.vectors.math import (
    Vector,
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
from embedlab.vectors.reduction import (
    ReductionMethod,
    as_matrix,
    reduce_with_pca,
    reduce_with_umap,
)

__all__ = [
    "ReductionMethod",
    "Vector",
    "add",
    "as_matrix",
    "as_vector",
    "cosine_similarity",
    "dot_product",
    "euclidean_distance",
    "magnitude",
    "normalize",
    "reduce_with_pca",
    "reduce_with_umap",
    "scale",
    "slerp",
    "subtract",
    "weighted_sum",
]
